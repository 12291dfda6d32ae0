import asyncio
import random
import unittest
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from prizewheel.config import Settings, UniquenessMode
from prizewheel.errors import InvalidCodeError, RemoteUnavailableError
from prizewheel.flags import JsonFileFlagStore, MemoryFlagStore, spun_flag_key
from prizewheel.models import (
    Base,
    Collaborator,
    Company,
    Event,
    Prize,
    Raffle,
    RaffleParticipant,
    RaffleWinner,
    RoletaParticipant,
)
from prizewheel.remote import SqlDataService
from prizewheel.workflows import (
    MSG_ALREADY_PARTICIPATED,
    MSG_CODE_INVALID,
    MSG_DRAW_UNSAVED,
    MSG_HISTORY_LOAD_FAILED,
    MSG_NAME_REQUIRED,
    MSG_NOT_ENOUGH_PRIZES,
    MSG_POOL_LOAD_FAILED,
    MSG_PRIZE_IN_USE,
    MSG_PRIZE_NAME_REQUIRED,
    MSG_PRIZE_NOT_FOUND,
    MSG_PRIZE_SAVE_FAILED,
    MSG_PRIZES_LOAD_FAILED,
    MSG_SAVE_FAILED,
    MSG_WINNER_SAVE_FAILED,
    CollaboratorWheel,
    KioskStep,
    OrganizerDraw,
    WheelKiosk,
    make_flag_store,
    spin_history,
    verify_collaborator_code,
)

SETTINGS = Settings(
    db_url="sqlite+pysqlite:///:memory:",
    data_service_url=None,
    data_service_key=None,
    data_service_timeout=1.0,
    spin_duration_ms=30,
    render_commit_delay_ms=5,
    draw_countdown_ms=30,
    uniqueness=UniquenessMode.RELAXED,
    flag_store_path=None,
)


class FlakySqlDataService(SqlDataService):
    """Fails the first ``failures`` spin saves."""

    def __init__(self, session_factory, failures: int = 1):
        super().__init__(session_factory)
        self.failures = failures

    def record_spin(self, participant_id, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            raise RemoteUnavailableError("Failed to save spin result")
        return super().record_spin(participant_id, **kwargs)


class FlakyRaffleDataService(SqlDataService):
    """Fails the first ``failures`` raffle winner saves.

    With ``lost_response`` the row is written before the failure is raised,
    like a response that never made it back.
    """

    def __init__(self, session_factory, failures: int = 1, lost_response: bool = False):
        super().__init__(session_factory)
        self.failures = failures
        self.lost_response = lost_response
        self.attempts = 0

    def record_raffle_winner(self, raffle_id, participant_id, **kwargs):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            if self.lost_response:
                super().record_raffle_winner(raffle_id, participant_id, **kwargs)
            raise RemoteUnavailableError("Failed to save raffle winner")
        return super().record_raffle_winner(raffle_id, participant_id, **kwargs)


class OfflineDataService:
    """Every call fails as if the data service could not be reached."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise RemoteUnavailableError(f"Failed to {name}")

        return _fail


class WorkflowTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, future=True, expire_on_commit=False)
        with self.Session.begin() as session:
            company = Company(name="Stand A")
            lonely = Company(name="Stand B")
            session.add_all([company, lonely])
            session.flush()
            session.add_all(
                [
                    Prize(name="Mug", company_id=company.id, position=0),
                    Prize(name="Pen", company_id=company.id, position=1),
                    Prize(name="Cap", company_id=company.id, position=2),
                    Prize(name="Sticker", company_id=lonely.id, position=0),
                    Collaborator(code="AB12", company_id=company.id, name="Bia"),
                    Collaborator(code="ZZ99", company_id=lonely.id, name="Leo"),
                ]
            )
            self.company_id = company.id
            self.lonely_id = lonely.id
        self.service = SqlDataService(self.Session)
        self.flags = MemoryFlagStore()

    def tearDown(self):
        self.engine.dispose()

    def _participants(self, company_id=None):
        with self.Session() as session:
            stmt = select(RoletaParticipant).order_by(RoletaParticipant.id)
            if company_id is not None:
                stmt = stmt.where(RoletaParticipant.company_id == company_id)
            return session.scalars(stmt).all()


class TestWheelKiosk(WorkflowTestCase):
    def _kiosk(self, service=None, company_id=None, **kwargs):
        return WheelKiosk(
            service or self.service,
            self.flags,
            company_id or self.company_id,
            settings=SETTINGS,
            rng=random.Random(3),
            **kwargs,
        )

    async def _ready_to_spin(self, kiosk, email="ana@x.com"):
        self.assertEqual(await kiosk.load(), KioskStep.REGISTER)
        self.assertEqual(await kiosk.register("Ana", email, "11 9999"), KioskStep.VERIFY_COLLABORATOR)
        self.assertEqual(await kiosk.verify_collaborator("ab12"), KioskStep.SPIN)

    async def test_full_flow_saves_result_once(self):
        kiosk = self._kiosk(extra_turns=4)
        await self._ready_to_spin(kiosk)
        self.assertEqual([p.name for p in kiosk.prizes], ["Mug", "Pen", "Cap"])

        self.assertTrue(await kiosk.start_spin())
        self.assertFalse(await kiosk.start_spin())
        winner = await kiosk.wait_for_result()

        self.assertIn(winner, kiosk.prizes)
        self.assertEqual(kiosk.step, KioskStep.SPUN)
        self.assertEqual(kiosk.winner, winner)
        self.assertIsNotNone(kiosk.record)
        self.assertEqual(kiosk.record.prize_name, winner.name)
        self.assertTrue(self.flags.get(spun_flag_key(self.company_id)))
        self.assertEqual(kiosk.frames[0].phase.value, "armed")

        rows = self._participants(self.company_id)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].prize_id, winner.id)
        self.assertIsNotNone(rows[0].spun_at)

        # Spinning again in the same session is not possible.
        self.assertFalse(await kiosk.start_spin())

    async def test_reload_after_spin_is_blocked(self):
        kiosk = self._kiosk()
        await self._ready_to_spin(kiosk)
        await kiosk.start_spin()
        await kiosk.wait_for_result()

        reloaded = self._kiosk()
        self.assertEqual(await reloaded.load(), KioskStep.ALREADY_PARTICIPATED)

    async def test_known_email_is_already_participated(self):
        self.service.insert_participant(self.company_id, name="Ana", email="ana@x.com")
        kiosk = self._kiosk()
        await kiosk.load()

        step = await kiosk.register("Ana", "ANA@x.com")

        self.assertEqual(step, KioskStep.ALREADY_PARTICIPATED)
        self.assertEqual(kiosk.form_error, MSG_ALREADY_PARTICIPATED)
        self.assertEqual(len(self._participants(self.company_id)), 1)

    async def test_name_is_required(self):
        kiosk = self._kiosk()
        await kiosk.load()
        self.assertEqual(await kiosk.register("   "), KioskStep.REGISTER)
        self.assertEqual(kiosk.form_error, MSG_NAME_REQUIRED)
        self.assertEqual(self._participants(), [])

    async def test_wrong_code_keeps_step(self):
        kiosk = self._kiosk()
        await kiosk.load()
        await kiosk.register("Ana")

        # Another stand's code does not unlock this wheel.
        self.assertEqual(await kiosk.verify_collaborator("ZZ99"), KioskStep.VERIFY_COLLABORATOR)
        self.assertEqual(kiosk.form_error, MSG_CODE_INVALID)
        self.assertEqual(await kiosk.verify_collaborator("ab12"), KioskStep.SPIN)
        self.assertIsNone(kiosk.form_error)

    async def test_steps_must_follow_in_order(self):
        kiosk = self._kiosk()
        with self.assertRaises(RuntimeError):
            await kiosk.register("Ana")

    async def test_unknown_company_is_an_error(self):
        kiosk = self._kiosk(company_id=9999)
        self.assertEqual(await kiosk.load(), KioskStep.ERROR)

    async def test_single_prize_cannot_spin(self):
        kiosk = self._kiosk(company_id=self.lonely_id)
        await kiosk.load()
        await kiosk.register("Ana")
        await kiosk.verify_collaborator("ZZ99")

        self.assertFalse(await kiosk.start_spin())
        self.assertEqual(kiosk.form_error, MSG_NOT_ENOUGH_PRIZES)
        self.assertIsNone(kiosk.session)

    async def test_teardown_mid_spin_saves_nothing(self):
        settings = replace(SETTINGS, spin_duration_ms=300)
        kiosk = WheelKiosk(self.service, self.flags, self.company_id, settings=settings)
        await self._ready_to_spin(kiosk)
        await kiosk.start_spin()
        await asyncio.sleep(0.03)

        kiosk.teardown()

        self.assertIsNone(await kiosk.wait_for_result())
        await asyncio.sleep(0.35)
        self.assertFalse(self.flags.get(spun_flag_key(self.company_id)))
        self.assertIsNone(self._participants(self.company_id)[0].spun_at)
        self.assertEqual(kiosk.step, KioskStep.SPIN)

    async def test_failed_save_can_be_retried(self):
        service = FlakySqlDataService(self.Session)
        kiosk = self._kiosk(service=service)
        await self._ready_to_spin(kiosk)
        await kiosk.start_spin()

        winner = await kiosk.wait_for_result()

        self.assertEqual(kiosk.step, KioskStep.SPUN)
        self.assertEqual(kiosk.form_error, MSG_SAVE_FAILED)
        self.assertIsNotNone(kiosk.persist_error)
        self.assertFalse(self.flags.get(spun_flag_key(self.company_id)))

        self.assertTrue(await kiosk.retry_save())
        self.assertIsNone(kiosk.form_error)
        self.assertIsNone(kiosk.persist_error)
        self.assertTrue(self.flags.get(spun_flag_key(self.company_id)))
        self.assertEqual(self._participants(self.company_id)[0].prize_id, winner.id)

    async def test_participant_removed_before_save(self):
        kiosk = self._kiosk()
        await self._ready_to_spin(kiosk)
        with self.Session.begin() as session:
            session.delete(session.get(RoletaParticipant, kiosk.participant.id))

        self.assertTrue(await kiosk.start_spin())
        winner = await kiosk.wait_for_result()

        self.assertIsNotNone(winner)
        self.assertEqual(kiosk.step, KioskStep.SPUN)
        self.assertEqual(kiosk.form_error, MSG_SAVE_FAILED)
        self.assertIn("does not exist", kiosk.persist_error)
        self.assertFalse(self.flags.get(spun_flag_key(self.company_id)))

    async def test_spin_recorded_elsewhere_blocks_commit(self):
        kiosk = self._kiosk()
        await self._ready_to_spin(kiosk)
        # Same e-mail spun on another device after this one registered.
        participant = kiosk.participant
        self.service.record_spin(
            participant.id,
            prize_id=None,
            prize_name="Mug",
            spun_at=datetime.now(timezone.utc),
        )

        self.assertFalse(await kiosk.start_spin())
        self.assertEqual(kiosk.step, KioskStep.ALREADY_PARTICIPATED)
        self.assertTrue(self.flags.get(spun_flag_key(self.company_id)))


class TestCollaboratorFlows(WorkflowTestCase):
    def test_verify_collaborator_code(self):
        found = verify_collaborator_code(self.service, self.company_id, " ab12 ")
        self.assertEqual(found.name, "Bia")
        with self.assertRaises(InvalidCodeError):
            verify_collaborator_code(self.service, self.company_id, "")
        with self.assertRaises(InvalidCodeError):
            verify_collaborator_code(self.service, self.company_id, "ZZ99")

    async def test_preview_spin_is_not_recorded(self):
        wheel = CollaboratorWheel(
            self.service, self.company_id, settings=SETTINGS, rng=random.Random(1)
        )
        prizes = await wheel.load_prizes()

        first = await wheel.spin()
        second = await wheel.spin()

        self.assertIn(first, prizes)
        self.assertIn(second, prizes)
        self.assertFalse(wheel.is_spinning)
        self.assertEqual(self._participants(), [])

    async def test_preview_spin_needs_two_prizes(self):
        wheel = CollaboratorWheel(self.service, self.lonely_id, settings=SETTINGS)
        await wheel.load_prizes()
        self.assertIsNone(await wheel.spin())

    async def test_history_lists_unspun_first(self):
        done = self.service.insert_participant(self.company_id, name="Done")
        self.service.record_spin(
            done.id, prize_id=None, prize_name="Pen", spun_at=datetime.now(timezone.utc)
        )
        self.service.insert_participant(self.company_id, name="Waiting")
        wheel = CollaboratorWheel(self.service, self.company_id, settings=SETTINGS)

        history = await wheel.history()

        self.assertEqual([p.name for p in history], ["Waiting", "Done"])
        self.assertEqual(spin_history(self.service, self.company_id), history)

    async def test_offline_service_leaves_error(self):
        wheel = CollaboratorWheel(OfflineDataService(), self.company_id, settings=SETTINGS)

        self.assertEqual(await wheel.load_prizes(), [])
        self.assertEqual(wheel.error, MSG_PRIZES_LOAD_FAILED)
        self.assertEqual(await wheel.history(), [])
        self.assertEqual(wheel.error, MSG_HISTORY_LOAD_FAILED)
        self.assertIsNone(await wheel.save_prize("Cap"))
        self.assertEqual(wheel.error, MSG_PRIZE_SAVE_FAILED)
        wheel.error = None
        self.assertFalse(await wheel.delete_prize(1))
        self.assertEqual(wheel.error, MSG_PRIZE_SAVE_FAILED)

    async def test_failed_reload_keeps_prizes(self):
        wheel = CollaboratorWheel(self.service, self.company_id, settings=SETTINGS)
        prizes = await wheel.load_prizes()

        wheel._service = OfflineDataService()
        self.assertEqual(await wheel.load_prizes(), [])
        self.assertEqual(wheel.prizes, prizes)

    async def test_manage_prizes(self):
        wheel = CollaboratorWheel(self.service, self.company_id, settings=SETTINGS)
        await wheel.load_prizes()

        added = await wheel.save_prize(" Hat ")
        self.assertEqual(added.name, "Hat")
        self.assertEqual([p.name for p in wheel.prizes], ["Mug", "Pen", "Cap", "Hat"])

        await wheel.save_prize("Hat", prize_id=added.id, position=-1)
        self.assertEqual(wheel.prizes[0].name, "Hat")

        self.assertTrue(await wheel.delete_prize(added.id))
        self.assertEqual([p.name for p in wheel.prizes], ["Mug", "Pen", "Cap"])
        self.assertIsNone(wheel.error)

    async def test_won_prize_is_protected(self):
        wheel = CollaboratorWheel(self.service, self.company_id, settings=SETTINGS)
        mug = (await wheel.load_prizes())[0]
        done = self.service.insert_participant(self.company_id, name="Done")
        self.service.record_spin(
            done.id, prize_id=mug.id, prize_name=mug.name, spun_at=datetime.now(timezone.utc)
        )

        self.assertIsNone(await wheel.save_prize("Cup", prize_id=mug.id))
        self.assertEqual(wheel.error, MSG_PRIZE_IN_USE)
        self.assertFalse(await wheel.delete_prize(mug.id))
        self.assertEqual(wheel.error, MSG_PRIZE_IN_USE)
        self.assertEqual(wheel.prizes[0].name, "Mug")

    async def test_prize_form_errors(self):
        wheel = CollaboratorWheel(self.service, self.company_id, settings=SETTINGS)
        self.assertIsNone(await wheel.save_prize("   "))
        self.assertEqual(wheel.error, MSG_PRIZE_NAME_REQUIRED)
        self.assertFalse(await wheel.delete_prize(12345))
        self.assertEqual(wheel.error, MSG_PRIZE_NOT_FOUND)


class TestOrganizerDraw(WorkflowTestCase):
    def setUp(self):
        super().setUp()
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
                    RaffleParticipant(name="Eva", raffle=bike),
                ]
            )
            session.flush()
            self.tv_id, self.bike_id = tv.id, bike.id

    def _draw(self, raffle_ids, **kwargs):
        return OrganizerDraw(
            self.service,
            raffle_ids=raffle_ids,
            settings=SETTINGS,
            rng=random.Random(7),
            **kwargs,
        )

    def _winner_rows(self):
        with self.Session() as session:
            return session.scalars(select(RaffleWinner)).all()

    async def test_draws_each_entry_once(self):
        draw = self._draw([self.tv_id, self.bike_id])
        self.assertEqual(await draw.eligible_count(), 3)

        drawn = []
        for _ in range(3):
            winner = await draw.draw()
            self.assertIsNotNone(winner)
            self.assertEqual(draw.winner, winner)
            drawn.append(winner.id)

        self.assertEqual(len(set(drawn)), 3)
        self.assertEqual(len(self._winner_rows()), 3)

        self.assertIsNone(await draw.draw())
        self.assertTrue(draw.no_eligible)
        self.assertIsNone(draw.winner)

    async def test_winner_of_other_raffle_stays_eligible(self):
        tv_draw = self._draw([self.tv_id])
        await tv_draw.draw()

        bike_draw = self._draw([self.bike_id])
        pool = await bike_draw.eligible_pool()
        self.assertEqual([e.name for e in pool], ["Eva"])

    async def test_single_entry_is_drawn(self):
        draw = self._draw([self.bike_id])
        winner = await draw.draw()
        self.assertEqual(winner.name, "Eva")

    async def test_no_selection_means_no_eligible(self):
        draw = self._draw([])
        self.assertIsNone(await draw.draw())
        self.assertTrue(draw.no_eligible)
        self.assertEqual(self._winner_rows(), [])

    async def test_changing_selection_clears_winner(self):
        draw = self._draw([self.tv_id])
        await draw.draw()
        self.assertIsNotNone(draw.winner)

        draw.toggle_raffle(self.bike_id)

        self.assertEqual(draw.selected_raffle_ids, [self.tv_id, self.bike_id])
        self.assertIsNone(draw.winner)
        self.assertIsNone(draw.session)

        draw.toggle_raffle(self.tv_id)
        self.assertEqual(draw.selected_raffle_ids, [self.bike_id])

    async def test_countdown_and_concurrent_draw(self):
        settings = replace(SETTINGS, draw_countdown_ms=1500)
        draw = OrganizerDraw(self.service, raffle_ids=[self.tv_id], settings=settings)
        task = asyncio.create_task(draw.draw())
        for _ in range(100):
            await asyncio.sleep(0.01)
            if draw.countdown is not None:
                break

        self.assertTrue(draw.is_drawing)
        self.assertEqual(draw.countdown, 2)
        self.assertIsNone(await draw.draw())

        draw.teardown()
        self.assertIsNone(await task)
        self.assertEqual(self._winner_rows(), [])

    async def test_unsaved_winner_blocks_next_draw(self):
        service = FlakyRaffleDataService(self.Session)
        draw = OrganizerDraw(
            service, raffle_ids=[self.tv_id], settings=SETTINGS, rng=random.Random(7)
        )

        first = await draw.draw()
        self.assertIsNotNone(first)
        self.assertEqual(draw.winner, first)
        self.assertEqual(draw.error, MSG_WINNER_SAVE_FAILED)
        self.assertIsNotNone(draw.persist_error)
        self.assertEqual(self._winner_rows(), [])

        # The other entry must not be drawn while the first is unsaved.
        self.assertIsNone(await draw.draw())
        self.assertEqual(draw.error, MSG_DRAW_UNSAVED)
        self.assertEqual(draw.winner, first)
        self.assertEqual(service.attempts, 1)

        self.assertTrue(await draw.retry_save())
        self.assertIsNone(draw.error)
        self.assertEqual([w.participant_id for w in self._winner_rows()], [first.id])

        second = await draw.draw()
        self.assertNotEqual(second.id, first.id)
        self.assertEqual(len(self._winner_rows()), 2)
        self.assertIsNone(await draw.draw())
        self.assertTrue(draw.no_eligible)

    async def test_retry_after_lost_response_counts_as_saved(self):
        service = FlakyRaffleDataService(self.Session, lost_response=True)
        draw = OrganizerDraw(service, raffle_ids=[self.bike_id], settings=SETTINGS)

        winner = await draw.draw()
        self.assertEqual(draw.error, MSG_WINNER_SAVE_FAILED)

        self.assertTrue(await draw.retry_save())
        self.assertIsNone(draw.persist_error)
        self.assertEqual([w.participant_id for w in self._winner_rows()], [winner.id])

    async def test_selection_change_drops_unsaved_winner(self):
        service = FlakyRaffleDataService(self.Session)
        draw = OrganizerDraw(service, raffle_ids=[self.tv_id], settings=SETTINGS)
        await draw.draw()
        self.assertTrue(draw.has_unsaved_winner)

        draw.select_raffles([self.bike_id])

        self.assertFalse(draw.has_unsaved_winner)
        self.assertIsNone(draw.error)
        self.assertEqual((await draw.draw()).name, "Eva")

    async def test_offline_service_leaves_error(self):
        draw = OrganizerDraw(
            OfflineDataService(), raffle_ids=[self.tv_id], settings=SETTINGS
        )

        self.assertEqual(await draw.eligible_pool(), [])
        self.assertEqual(draw.error, MSG_POOL_LOAD_FAILED)
        self.assertIsNone(await draw.eligible_count())
        self.assertIsNone(await draw.draw())
        self.assertEqual(draw.error, MSG_POOL_LOAD_FAILED)
        self.assertFalse(draw.no_eligible)
        self.assertIsNone(draw.session)

    async def test_winner_card_masks_phone(self):
        with self.Session.begin() as session:
            car = Raffle(name="Car", event_id=session.get(Raffle, self.tv_id).event_id)
            session.add_all(
                [car, RaffleParticipant(name="Fabi", raffle=car, phone="(11) 98765-4321")]
            )
            session.flush()
            car_id = car.id
        draw = self._draw([car_id])
        self.assertIsNone(draw.winner_card)

        winner = await draw.draw()

        self.assertEqual(winner.phone, "(11) 98765-4321")
        self.assertEqual(draw.winner_card.phone, "(11) 9****-4321")
        self.assertEqual(draw.winner_card.name, "Fabi")


class TestFlagStoreFactory(unittest.TestCase):
    def test_memory_store_by_default(self):
        self.assertIsInstance(make_flag_store(SETTINGS), MemoryFlagStore)

    def test_file_store_when_path_configured(self):
        store = make_flag_store(replace(SETTINGS, flag_store_path="flags.json"))
        self.assertIsInstance(store, JsonFileFlagStore)


if __name__ == "__main__":
    unittest.main()
