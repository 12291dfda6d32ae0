import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from prizewheel.errors import (
    AlreadyParticipatedError,
    DuplicateParticipantError,
    PrizeInUseError,
    RecordNotFoundError,
    RemoteUnavailableError,
)
from prizewheel.models import (
    Base,
    Collaborator,
    Company,
    Event,
    Prize,
    Raffle,
    RaffleParticipant,
)
from prizewheel.remote import SqlDataService


def memory_sessionmaker(create_tables: bool = True):
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    if create_tables:
        Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine, future=True, expire_on_commit=False)


class SqlDataServiceTests(unittest.TestCase):
    def setUp(self):
        self.engine, self.Session = memory_sessionmaker()
        self.service = SqlDataService(self.Session)
        with self.Session.begin() as session:
            company = Company(name="Stand A")
            session.add(company)
            session.flush()
            session.add_all(
                [
                    Prize(name="Mug", company_id=company.id, position=0),
                    Prize(name="Pen", company_id=company.id, position=1),
                    Collaborator(code="ab12", company_id=company.id, name="Bia"),
                ]
            )
            self.company_id = company.id

    def tearDown(self):
        self.engine.dispose()

    def test_company_and_prizes(self):
        company = self.service.get_company(self.company_id)
        self.assertIsNotNone(company)
        assert company is not None
        self.assertEqual(company.name, "Stand A")
        self.assertIsNone(self.service.get_company(999))

        prizes = self.service.list_prizes(self.company_id)
        self.assertEqual([p.name for p in prizes], ["Mug", "Pen"])
        self.assertEqual(self.service.list_prizes(999), [])

    def test_find_collaborator(self):
        found = self.service.find_collaborator(self.company_id, " Ab12 ")
        self.assertIsNotNone(found)
        assert found is not None
        self.assertEqual(found.name, "Bia")
        self.assertIsNone(self.service.find_collaborator(self.company_id, "nope"))
        self.assertIsNone(self.service.find_collaborator(self.company_id, "  "))

    def test_insert_and_find_participant(self):
        created = self.service.insert_participant(
            self.company_id, name="Ana", email="Ana@Example.com", phone="1199"
        )
        self.assertEqual(created.email, "ana@example.com")
        self.assertFalse(created.has_spun)

        found = self.service.find_participant_by_email(self.company_id, "ANA@example.com")
        self.assertEqual(found, created)
        self.assertEqual(self.service.get_participant(created.id), created)
        self.assertIsNone(self.service.get_participant(created.id + 100))

    def test_relaxed_insert_allows_duplicate_email(self):
        self.service.insert_participant(self.company_id, name="Ana", email="a@x.com")
        second = self.service.insert_participant(
            self.company_id, name="Ana again", email="a@x.com"
        )
        self.assertEqual(second.email, "a@x.com")

    def test_strict_insert_rejects_duplicate_email(self):
        first = self.service.insert_participant(
            self.company_id, name="Ana", email="a@x.com", unique=True
        )
        with self.assertRaises(DuplicateParticipantError) as ctx:
            self.service.insert_participant(
                self.company_id, name="Ana", email="A@X.com", unique=True
            )
        self.assertEqual(ctx.exception.participant_id, first.id)
        # Without an e-mail there is nothing to compare.
        self.service.insert_participant(self.company_id, name="Anon", unique=True)
        self.service.insert_participant(self.company_id, name="Anon", unique=True)

    def test_record_spin_never_overwrites(self):
        participant = self.service.insert_participant(self.company_id, name="Ana")
        prizes = self.service.list_prizes(self.company_id)
        first_time = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

        stored = self.service.record_spin(
            participant.id,
            prize_id=prizes[0].id,
            prize_name=prizes[0].name,
            spun_at=first_time,
        )
        self.assertEqual(stored.prize_name, "Mug")
        self.assertEqual(stored.spun_at, first_time)

        with self.assertRaises(AlreadyParticipatedError) as ctx:
            self.service.record_spin(
                participant.id,
                prize_id=prizes[1].id,
                prize_name=prizes[1].name,
                spun_at=first_time + timedelta(minutes=5),
            )
        self.assertEqual(ctx.exception.participant_id, participant.id)

        reloaded = self.service.get_participant(participant.id)
        assert reloaded is not None
        self.assertEqual(reloaded.prize_name, "Mug")
        self.assertEqual(reloaded.spun_at, first_time)

    def test_record_spin_for_missing_participant(self):
        with self.assertRaises(RecordNotFoundError):
            self.service.record_spin(
                12345,
                prize_id=None,
                prize_name="Mug",
                spun_at=datetime.now(timezone.utc),
            )

    def _spin_onto(self, prize):
        participant = self.service.insert_participant(self.company_id, name="Ana")
        self.service.record_spin(
            participant.id,
            prize_id=prize.id,
            prize_name=prize.name,
            spun_at=datetime.now(timezone.utc),
        )

    def test_save_prize_appends_to_the_wheel(self):
        prize = self.service.save_prize(self.company_id, name="  Cap ")

        self.assertEqual(prize.name, "Cap")
        self.assertEqual(prize.position, 2)
        names = [p.name for p in self.service.list_prizes(self.company_id)]
        self.assertEqual(names, ["Mug", "Pen", "Cap"])

    def test_save_first_prize_of_a_company(self):
        with self.Session.begin() as session:
            other = Company(name="Stand B")
            session.add(other)
            session.flush()
            other_id = other.id
        prize = self.service.save_prize(other_id, name="Sticker")
        self.assertEqual(prize.position, 0)

    def test_save_prize_requires_name(self):
        with self.assertRaises(ValueError):
            self.service.save_prize(self.company_id, name="  ")
        self.assertEqual(len(self.service.list_prizes(self.company_id)), 2)

    def test_rename_and_move_prize(self):
        mug, pen = self.service.list_prizes(self.company_id)
        moved = self.service.save_prize(
            self.company_id, name="Travel mug", prize_id=mug.id, position=3
        )
        self.assertEqual((moved.name, moved.position), ("Travel mug", 3))
        names = [p.name for p in self.service.list_prizes(self.company_id)]
        self.assertEqual(names, ["Pen", "Travel mug"])

    def test_won_prize_cannot_be_renamed_or_deleted(self):
        mug, _ = self.service.list_prizes(self.company_id)
        self._spin_onto(mug)

        with self.assertRaises(PrizeInUseError) as ctx:
            self.service.save_prize(self.company_id, name="Cup", prize_id=mug.id)
        self.assertEqual(ctx.exception.prize_id, mug.id)
        with self.assertRaises(PrizeInUseError):
            self.service.delete_prize(self.company_id, mug.id)

        # Reordering keeps the name, so it is still allowed.
        moved = self.service.save_prize(
            self.company_id, name="Mug", prize_id=mug.id, position=5
        )
        self.assertEqual(moved.position, 5)
        self.assertIn("Mug", [p.name for p in self.service.list_prizes(self.company_id)])

    def test_delete_prize(self):
        _, pen = self.service.list_prizes(self.company_id)
        self.service.delete_prize(self.company_id, pen.id)
        self.assertEqual(
            [p.name for p in self.service.list_prizes(self.company_id)], ["Mug"]
        )

    def test_unknown_or_foreign_prize(self):
        with self.Session.begin() as session:
            other = Company(name="Stand B")
            session.add(other)
            session.flush()
            other_id = other.id
        mug, _ = self.service.list_prizes(self.company_id)

        with self.assertRaises(RecordNotFoundError):
            self.service.save_prize(self.company_id, name="Cap", prize_id=12345)
        with self.assertRaises(RecordNotFoundError):
            self.service.delete_prize(other_id, mug.id)

    def test_spin_history_lists_pending_first_then_newest(self):
        base = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        early = self.service.insert_participant(self.company_id, name="Early")
        late = self.service.insert_participant(self.company_id, name="Late")
        pending = self.service.insert_participant(self.company_id, name="Pending")
        self.service.record_spin(early.id, prize_id=None, prize_name="Mug", spun_at=base)
        self.service.record_spin(
            late.id, prize_id=None, prize_name="Pen", spun_at=base + timedelta(hours=1)
        )

        history = self.service.list_spin_history(self.company_id)

        self.assertEqual([p.name for p in history], ["Pending", "Late", "Early"])
        self.assertIsNone(history[0].spun_at)
        self.assertEqual(pending.id, history[0].id)

    def test_raffle_queries_and_winner_conflict(self):
        with self.Session.begin() as session:
            event = Event(name="Expo")
            tv = Raffle(name="TV", event=event)
            bike = Raffle(name="Bike", event=event)
            session.add_all(
                [
                    event,
                    tv,
                    bike,
                    RaffleParticipant(name="Caio", raffle=tv),
                    RaffleParticipant(name="Duda", raffle=tv),
                    RaffleParticipant(name="Caio", raffle=bike),
                ]
            )
            session.flush()
            event_id, tv_id, bike_id = event.id, tv.id, bike.id

        raffles = self.service.list_event_raffles(event_id)
        self.assertEqual([r.name for r in raffles], ["TV", "Bike"])

        entries = self.service.list_raffle_participants([tv_id, bike_id])
        self.assertEqual(len(entries), 3)
        self.assertEqual(self.service.list_raffle_participants([]), [])

        caio_tv = entries[0]
        winner = self.service.record_raffle_winner(
            tv_id, caio_tv.id, drawn_at=datetime.now(timezone.utc)
        )
        self.assertEqual(winner.participant_id, caio_tv.id)
        self.assertEqual(
            [w.participant_id for w in self.service.list_raffle_winners([tv_id])],
            [caio_tv.id],
        )
        self.assertEqual(self.service.list_raffle_winners([bike_id]), [])

        with self.assertRaises(AlreadyParticipatedError):
            self.service.record_raffle_winner(
                tv_id, caio_tv.id, drawn_at=datetime.now(timezone.utc)
            )


class SqlDataServiceFailureTests(unittest.TestCase):
    def test_database_errors_become_remote_unavailable(self):
        engine, Session = memory_sessionmaker(create_tables=False)
        service = SqlDataService(Session)
        try:
            with self.assertRaises(RemoteUnavailableError):
                service.list_prizes(1)
            with self.assertRaises(RemoteUnavailableError):
                service.insert_participant(1, name="Ana", email="a@x.com")
        finally:
            engine.dispose()


if __name__ == "__main__":
    unittest.main()
