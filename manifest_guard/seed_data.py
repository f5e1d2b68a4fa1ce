"""Seed data script to populate a local database for manual testing."""
import asyncio
import uuid
from decimal import Decimal

from sqlalchemy import select

from manifest_guard.core.database import async_session_maker, engine, Base
from manifest_guard.core.enums import UserRole
from manifest_guard.core.security import create_access_token
from manifest_guard.models import (
    User, Company, Store, Order, Shipment, ReturnShipment, Invoice
)


async def seed_data():
    """Seed a company, a store, a few invoiced orders and scanned returns."""
    async with async_session_maker() as session:
        # Check if data already exists
        result = await session.execute(select(Company).limit(1))
        if result.scalar_one_or_none():
            print("Data already seeded. Skipping...")
            return

        company = Company(
            id=str(uuid.uuid4()),
            name="Demo Retail SRL",
            vat_code="RO12345678",
            invoicing_email=None,
            invoicing_token=None,
        )
        store = Store(id=str(uuid.uuid4()), name="Demo Webshop", company=company)
        session.add_all([company, store])
        await session.flush()
        print(f"Created company: {company.name} (ID: {company.id})")

        users = [
            User(id=str(uuid.uuid4()), email="admin@demo.com", full_name="Admin User", role=UserRole.ADMIN),
            User(id=str(uuid.uuid4()), email="operator@demo.com", full_name="Warehouse Operator", role=UserRole.OPERATOR),
        ]
        session.add_all(users)

        for index in range(1, 6):
            order = Order(
                id=str(uuid.uuid4()),
                order_number=f"DEMO-{index:04d}",
                total_price=Decimal("149.90") * index,
                store_id=store.id,
            )
            shipment = Shipment(id=str(uuid.uuid4()), awb_number=f"AWB{index:08d}", order=order)
            invoice = Invoice(
                id=str(uuid.uuid4()),
                order=order,
                company_id=company.id,
                series="DEMO",
                number=str(1000 + index),
            )
            session.add_all([order, shipment, invoice])

            # Every second order came back
            if index % 2 == 0:
                session.add(ReturnShipment(
                    id=str(uuid.uuid4()),
                    return_awb_number=f"RET{index:08d}",
                    original_shipment=shipment,
                ))

        await session.commit()
        print("\n✅ Seed data created successfully!")
        print("\n📝 Bearer tokens (30 minutes):")
        for user in users:
            token = create_access_token(user.id, user.role.value, email=user.email)
            print(f"   {user.role.value:<9} {user.email}: {token}")


async def main():
    """Main entry point."""
    # Create tables if they don't exist (for local development)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await seed_data()


if __name__ == "__main__":
    asyncio.run(main())
