#!/usr/bin/env python3
"""Seed development database with test data.

Creates the GetServed tables if they are missing and populates them with
demo rows for local development:
- Contact profiles for a customer, two providers and an admin
- Provider verification rows (one approved, one awaiting review)
- Bookings in each escrow state (awaiting payment, held, released, refunded)

Usage:
    python scripts/seed_data.py --env dev
    python scripts/seed_data.py --env dev --clear-first
    python scripts/seed_data.py --env dev --tables-only
"""

import argparse
import os
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from getserved.models.booking import Booking
from getserved.models.enums import BookingStatus, PaymentStatus
from getserved.models.errors import ErrorCode, EscrowError
from getserved.services.dynamodb import (
    BOOKINGS_TABLE,
    PROFILES_TABLE,
    PROVIDERS_TABLE,
    TABLE_SCHEMAS,
    DynamoDBService,
)
from getserved.services.ledger import BookingLedger
from getserved.services.payout import split_payout

CUSTOMER_ID = "demo-customer-ada"
PROVIDER_ID = "demo-provider-bola"
NEW_PROVIDER_ID = "demo-provider-chidi"
ADMIN_ID = "demo-admin"


def create_profiles(db: DynamoDBService) -> None:
    """Seed contact profiles used to address notification emails."""
    profiles = [
        {"user_id": CUSTOMER_ID, "full_name": "Ada Obi", "email": "ada@example.com"},
        {"user_id": PROVIDER_ID, "full_name": "Bola Ade", "email": "bola@example.com"},
        {"user_id": NEW_PROVIDER_ID, "full_name": "Chidi Eze", "email": "chidi@example.com"},
        {"user_id": ADMIN_ID, "full_name": "GetServed Admin", "email": "admin@example.com"},
    ]
    print(f"Seeding profiles table: {db.table_name(PROFILES_TABLE)}")
    for profile in profiles:
        db.put_item(PROFILES_TABLE, profile)
        print(f"  ✓ {profile['full_name']} ({profile['email']})")


def create_providers(db: DynamoDBService, now: datetime) -> None:
    """Seed one verified provider and one awaiting review."""
    stamp = now.isoformat()
    providers = [
        {
            "provider_id": PROVIDER_ID,
            "verification_status": "approved",
            "id_document_url": "https://files.example.com/bola/id.jpg",
            "selfie_url": "https://files.example.com/bola/selfie.jpg",
            "face_match": {
                "match": True,
                "confidence": "high",
                "reason": "Seeded verdict",
                "id_face_detected": True,
                "selfie_face_detected": True,
            },
            "reviewed_by": ADMIN_ID,
            "reviewed_at": stamp,
            "submitted_at": stamp,
            "created_at": stamp,
            "updated_at": stamp,
        },
        {
            "provider_id": NEW_PROVIDER_ID,
            "verification_status": "under_review",
            "id_document_url": "https://files.example.com/chidi/id.jpg",
            "selfie_url": "https://files.example.com/chidi/selfie.jpg",
            "submitted_at": stamp,
            "created_at": stamp,
            "updated_at": stamp,
        },
    ]
    print(f"Seeding providers table: {db.table_name(PROVIDERS_TABLE)}")
    for provider in providers:
        db.put_item(PROVIDERS_TABLE, provider)
        print(f"  ✓ {provider['provider_id']} ({provider['verification_status']})")


def create_bookings(db: DynamoDBService, now: datetime) -> None:
    """Seed one booking per escrow state."""
    ledger = BookingLedger(db)
    total = Decimal("15000")
    split = split_payout(total, Decimal("0.10"))
    base = {
        "customer_id": CUSTOMER_ID,
        "provider_id": PROVIDER_ID,
        "total_amount": total,
        "currency": "NGN",
        "duration_hours": 3,
        "scheduled_time": "10:00",
        "address": "12 Admiralty Way, Lekki, Lagos",
        "created_at": now,
        "updated_at": now,
    }
    bookings = [
        Booking(
            booking_id="demo-awaiting-payment",
            scheduled_date=date.today() + timedelta(days=7),
            **base,
        ),
        Booking(
            booking_id="demo-held",
            scheduled_date=date.today() + timedelta(days=2),
            payment_reference="BK_demo-held_1767225600000",
            payment_access_code="demo_access_held",
            payment_status=PaymentStatus.PAID,
            status=BookingStatus.IN_PROGRESS,
            customer_completed=True,
            **base,
        ),
        Booking(
            booking_id="demo-released",
            scheduled_date=date.today() - timedelta(days=3),
            payment_reference="BK_demo-released_1767225600000",
            payment_status=PaymentStatus.RELEASED,
            status=BookingStatus.COMPLETED,
            customer_completed=True,
            provider_completed=True,
            provider_payout_amount=split.provider_payout,
            platform_fee_amount=split.platform_fee,
            completed_at=now,
            **base,
        ),
        Booking(
            booking_id="demo-refunded",
            scheduled_date=date.today() - timedelta(days=10),
            payment_reference="BK_demo-refunded_1767225600000",
            payment_status=PaymentStatus.REFUNDED,
            status=BookingStatus.CANCELLED,
            refund_amount=Decimal("7500.00"),
            refund_reason="Provider arrived two hours late",
            refunded_at=now,
            cancellation_reason="Provider arrived two hours late",
            cancelled_at=now,
            **base,
        ),
    ]

    print(f"Seeding bookings table: {db.table_name(BOOKINGS_TABLE)}")
    for booking in bookings:
        try:
            ledger.create(booking)
            print(f"  ✓ {booking.booking_id} ({booking.payment_status.value})")
        except EscrowError as e:
            if e.code != ErrorCode.BOOKING_ALREADY_EXISTS:
                raise
            print(f"  ○ {booking.booking_id} already exists")


def main() -> int:
    """Run the seed script."""
    parser = argparse.ArgumentParser(description="Seed development database with test data")
    parser.add_argument(
        "--env",
        choices=["dev", "staging", "prod"],
        default="dev",
        help="Target environment (default: dev)",
    )
    parser.add_argument(
        "--region",
        default=os.environ.get("AWS_DEFAULT_REGION", "eu-west-1"),
        help="AWS region (default: eu-west-1 or AWS_DEFAULT_REGION env var)",
    )
    parser.add_argument(
        "--tables-only",
        action="store_true",
        help="Only create missing tables",
    )
    parser.add_argument(
        "--clear-first",
        action="store_true",
        help="Clear existing data before seeding",
    )
    args = parser.parse_args()

    os.environ["AWS_DEFAULT_REGION"] = args.region

    # Safety check for production
    if args.env == "prod":
        confirm = input("⚠️  WARNING: You are about to modify PRODUCTION data. Type 'yes' to continue: ")
        if confirm.lower() != "yes":
            print("Aborted.")
            return 1

    print(f"\n🌱 Seeding {args.env} environment (region: {args.region})\n")

    db = DynamoDBService(environment=args.env)
    try:
        names = db.create_tables(wait=True)
    except Exception as e:
        print(f"  ❌ Failed to create tables: {e}")
        return 1
    print(f"Tables ready: {', '.join(names)}\n")

    if args.tables_only:
        return 0

    if args.clear_first:
        print("Clearing existing data...")
        for schema in TABLE_SCHEMAS:
            count = db.clear_table(schema["name"])
            print(f"  Cleared {count} items from {schema['name']}")
        print()

    now = datetime.now(timezone.utc)
    try:
        create_profiles(db)
        print()
        create_providers(db, now)
        print()
        create_bookings(db, now)
    except Exception as e:
        print(f"  ❌ Failed to seed data: {e}")
        return 1

    print("\n✅ Seed completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
