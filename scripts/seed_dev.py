from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker
from prizewheel.db.engine import make_engine
from prizewheel.models import (
    Base,
    Collaborator,
    Company,
    Event,
    Prize,
    Raffle,
    RaffleParticipant,
    RoletaParticipant,
)


def main() -> None:
    """Seed the development database with sample stands, prizes and raffles."""
    engine = make_engine()

    # Drop and recreate all tables with foreign key checks off so SQLite can
    # drop tables in any order.
    with engine.connect() as conn:
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        if conn.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        # Stands
        coffee = Company(name="Coffee Corner", created_at=now)
        robotics = Company(
            name="Robotics Lab",
            logo_url="https://example.com/logos/robotics.png",
            created_at=now,
        )
        session.add_all([coffee, robotics])
        session.flush()

        # Wheel slices, in display order
        for position, name in enumerate(["Espresso", "Mug", "Sticker", "Try again"]):
            session.add(Prize(name=name, company=coffee, position=position))
        for position, name in enumerate(
            ["Robot kit", "T-shirt", "Pen", "Keychain", "Sticker", "Try again"]
        ):
            session.add(Prize(name=name, company=robotics, position=position))

        # Collaborator codes that unlock the wheel
        session.add_all(
            [
                Collaborator(code="COFFEE1", company=coffee, name="Barista"),
                Collaborator(code="ROBO42", company=robotics, name="Booth lead"),
            ]
        )
        session.flush()

        # One attendee who already spun and one still waiting
        spun = RoletaParticipant(
            name="Alice",
            email="alice@example.com",
            phone="+55 11 90000-0001",
            company=coffee,
            created_at=now - timedelta(minutes=20),
        )
        spun.prize = coffee.prizes[1]
        spun.prize_name = coffee.prizes[1].name
        spun.spun_at = now - timedelta(minutes=18)
        waiting = RoletaParticipant(
            name="Bob",
            email="bob@example.com",
            company=coffee,
            created_at=now - timedelta(minutes=5),
        )
        session.add_all([spun, waiting])

        # Organizer raffles
        event = Event(name="Tech Expo")
        main_stage = Raffle(name="Main stage giveaway", event=event)
        closing = Raffle(name="Closing raffle", event=event)
        session.add_all([event, main_stage, closing])
        for i in range(1, 6):
            session.add(
                RaffleParticipant(
                    name=f"Attendee {i:02d}",
                    email=f"attendee{i:02d}@example.com",
                    raffle=main_stage,
                )
            )
        # Some attendees entered both raffles
        for i in (1, 3):
            session.add(
                RaffleParticipant(
                    name=f"Attendee {i:02d}",
                    email=f"attendee{i:02d}@example.com",
                    raffle=closing,
                )
            )

    print("Seeded development database.")


if __name__ == "__main__":
    main()
