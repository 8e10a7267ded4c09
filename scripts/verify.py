"""
Order Store Verification Script

Verifies data integrity of the persisted order collection: required
fields, unique ids, and the total == subtotal + tax + deliveryFee rule.
Run from project root: python scripts/verify.py [--export]

Version: 1.0.0
"""

import argparse
import os
import sys
from datetime import datetime
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from kitchen_checkout.core.config import get_settings
from kitchen_checkout.core.exceptions import StorageError
from kitchen_checkout.services.order_store import OrderStore

REQUIRED_COLUMNS = ["id", "transactionId", "customerName", "total", "orderStatus"]


def verify_orders(export: bool = False) -> bool:
    """Verify the order store after a simulation."""
    settings = get_settings()
    orders_file = settings.data_path / settings.orders_filename

    print("=" * 60)
    print("🔍 ORDER STORE VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {orders_file}")
    print("=" * 60)

    if not orders_file.exists():
        print("\n❌ Order file not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    store = OrderStore(orders_file, lock_timeout=settings.store_lock_timeout)
    try:
        orders = store.list()
    except (StorageError, ValueError) as e:
        print(f"\n❌ Could not read order store: {e}")
        return False
    print("\n✅ Store loaded successfully!")

    df = pd.DataFrame([order.model_dump(by_alias=True) for order in orders])

    print("\n📊 STATISTICS:")
    print(f"   Total Orders: {len(df)}")
    if df.empty:
        print("\n✅ VERIFICATION COMPLETE (empty store)")
        return True

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
    else:
        print("\n✅ All required columns present")

    duplicates = df["id"].duplicated().sum()
    if duplicates > 0:
        print(f"\n⚠️ {duplicates} duplicate order IDs found!")
    else:
        print("✅ No duplicate order IDs")

    mismatched = df[df["total"] != df["subtotal"] + df["tax"] + df["deliveryFee"]]
    if len(mismatched):
        print(f"⚠️ {len(mismatched)} order(s) whose total does not add up")
    else:
        print("✅ Every total equals subtotal + tax + deliveryFee")

    print("\n📦 STATUS BREAKDOWN:")
    for status, count in df["orderStatus"].value_counts().items():
        print(f"   {getattr(status, 'value', status)}: {count}")

    total = sum(df["total"], Decimal("0"))
    print("\n💰 REVENUE:")
    print(f"   Total: ${total:.2f}")
    print(f"   Average: ${total / len(df):.2f}")

    print("\n📋 RECENT ORDERS:")
    print("-" * 60)
    print(df[["id", "customerName", "total"]].tail(5).to_string(index=False))

    if export:
        path = store.export_excel(settings.data_path / settings.excel_filename)
        print(f"\n📤 Exported to {path}")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)

    return not missing and not duplicates and not len(mismatched)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Order store verification")
    parser.add_argument("--export", action="store_true", help="Also write the Excel export")
    args = parser.parse_args()

    sys.exit(0 if verify_orders(export=args.export) else 1)
