import logging

from sqlalchemy import select

from .models import Service, ServiceCategory, Staff, StaffService
from .working_hours import WEEKDAYS

logger = logging.getLogger(__name__)

SERVICES = [
    ("Signature Cut & Style", "Precision haircut with personalized styling consultation and luxury finish", 90, 12500, ServiceCategory.HAIR_DESIGN),
    ("Color Transformation", "Complete color makeover with premium Olaplex treatment and gloss finish", 180, 28500, ServiceCategory.COLOR_SERVICES),
    ("Balayage Highlights", "Hand-painted highlights for natural, sun-kissed dimension", 150, 22500, ServiceCategory.COLOR_SERVICES),
    ("Keratin Treatment", "Smoothing treatment for frizz-free, manageable hair for up to 4 months", 120, 19500, ServiceCategory.HAIR_TREATMENTS),
    ("Bridal Hair & Makeup", "Complete bridal beauty package with trial session included", 240, 45000, ServiceCategory.SPECIAL_OCCASIONS),
    ("Hair Extensions", "Premium tape-in or clip-in extensions for length and volume", 120, 35000, ServiceCategory.EXTENSIONS),
    ("Deep Conditioning Treatment", "Intensive moisture therapy with scalp massage and steam treatment", 60, 8500, ServiceCategory.HAIR_TREATMENTS),
    ("Men's Cut & Style", "Modern men's haircut with beard trim and styling", 45, 6500, ServiceCategory.MENS_SERVICES),
]


def _week(weekday: tuple[str, str], saturday: tuple[str, str], sunday: tuple[str, str], sunday_working: bool) -> dict:
    hours = {name: {"start": weekday[0], "end": weekday[1], "isWorking": True} for name in WEEKDAYS[:5]}
    hours["saturday"] = {"start": saturday[0], "end": saturday[1], "isWorking": True}
    hours["sunday"] = {"start": sunday[0], "end": sunday[1], "isWorking": sunday_working}
    return hours


# (name, title, email, phone, service indexes into SERVICES, working hours)
STAFF = [
    (
        "Isabella Martinez",
        "Master Colorist & Creative Director",
        "isabella@luxehairstudio.com",
        "(555) 123-4567",
        (0, 1, 2, 4),
        _week(("09:00", "18:00"), ("08:00", "17:00"), ("10:00", "16:00"), False),
    ),
    (
        "Sophia Chen",
        "Senior Stylist & Extension Specialist",
        "sophia@luxehairstudio.com",
        "(555) 234-5678",
        (0, 3, 5, 6),
        _week(("10:00", "19:00"), ("09:00", "18:00"), ("11:00", "17:00"), False),
    ),
    (
        "Aria Thompson",
        "Bridal & Special Events Specialist",
        "aria@luxehairstudio.com",
        "(555) 345-6789",
        (0, 4, 6),
        _week(("09:00", "17:00"), ("08:00", "18:00"), ("10:00", "16:00"), True),
    ),
    (
        "Marcus Rodriguez",
        "Men's Grooming Specialist",
        "marcus@luxehairstudio.com",
        "(555) 456-7890",
        (7, 0),
        _week(("08:00", "16:00"), ("09:00", "17:00"), ("10:00", "15:00"), False),
    ),
]


async def seed_initial_data(session):
    # Seed services if missing
    result = await session.execute(select(Service))
    services = result.scalars().all()
    if not services:
        services = [
            Service(name=name, description=description, duration_minutes=duration, price_cents=price, category=category)
            for name, description, duration, price, category in SERVICES
        ]
        session.add_all(services)
        await session.flush()
        logger.info("Seeded %d services", len(services))

    result = await session.execute(select(Staff))
    staff = result.scalars().all()
    if not staff:
        by_name = {service.name: service for service in services}
        for name, title, email, phone, service_indexes, hours in STAFF:
            member = Staff(name=name, title=title, email=email, phone=phone, working_hours=hours, active=True)
            session.add(member)
            await session.flush()
            for index in service_indexes:
                service = by_name.get(SERVICES[index][0])
                if service:
                    session.add(StaffService(staff_id=member.id, service_id=service.id))
        logger.info("Seeded %d staff members", len(STAFF))

    await session.commit()
