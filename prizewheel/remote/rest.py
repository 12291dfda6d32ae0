"""Data service client for a PostgREST-style HTTP API."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urljoin

import requests

from ..errors import (
    AlreadyParticipatedError,
    DuplicateParticipantError,
    PrizeInUseError,
    RecordNotFoundError,
    RemoteUnavailableError,
)
from ..models.utils import mask_email, normalize_email, normalize_optional_text
from .records import (
    CollaboratorRecord,
    CompanyRecord,
    ParticipantRecord,
    PrizeRecord,
    RaffleEntryRecord,
    RaffleRecord,
    RaffleWinnerRecord,
)

logger = logging.getLogger(__name__)


def _in_filter(values: Iterable[int]) -> str:
    return "in.(" + ",".join(str(v) for v in values) + ")"


class RestDataService:
    """:class:`~prizewheel.remote.base.DataService` talking to ``<base_url>/rest/v1``.

    Rows are filtered with PostgREST operators (``eq.``, ``is.null``,
    ``in.(...)``) and writes request ``return=representation`` so the stored
    row comes back in the response.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required for the REST data service")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    # -------- headers --------
    @property
    def headers(self) -> Mapping[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _write_headers(self, prefer: str = "return=representation") -> Mapping[str, str]:
        return {**self.headers, "Content-Type": "application/json", "Prefer": prefer}

    # -------- core request --------
    def _request(
        self,
        method: str,
        table: str,
        *,
        action: str,
        params: Optional[dict] = None,
        json: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
        on_conflict: Optional[Exception] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", f"rest/v1/{table}")
        try:
            r = self.session.request(
                method=method.upper(),
                url=url,
                headers=headers or self.headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status == 409 and on_conflict is not None:
                raise on_conflict from exc
            logger.warning(f"Data service returned {status} while trying to {action}")
            raise RemoteUnavailableError(f"Failed to {action}") from exc
        except requests.RequestException as exc:
            logger.warning(f"Data service request failed while trying to {action}: {exc}")
            raise RemoteUnavailableError(f"Failed to {action}") from exc
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as exc:
            raise RemoteUnavailableError(
                f"Failed to {action}: malformed response"
            ) from exc

    def _rows(self, payload: Any) -> list[dict]:
        if payload is None:
            return []
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            return [payload]
        raise RemoteUnavailableError(f"Unexpected data service response: {payload!r}")

    # -------- companies & prizes --------
    def get_company(self, company_id: int) -> Optional[CompanyRecord]:
        rows = self._rows(
            self._request(
                "GET",
                "companies",
                action="load company",
                params={"select": "*", "id": f"eq.{company_id}"},
            )
        )
        return CompanyRecord.from_row(rows[0]) if rows else None

    def list_prizes(self, company_id: int) -> list[PrizeRecord]:
        rows = self._rows(
            self._request(
                "GET",
                "prizes",
                action="load prizes",
                params={
                    "select": "*",
                    "company_id": f"eq.{company_id}",
                    "order": "position.asc,id.asc",
                },
            )
        )
        return [PrizeRecord.from_row(row) for row in rows]

    def _company_prize(self, company_id: int, prize_id: int) -> PrizeRecord:
        rows = self._rows(
            self._request(
                "GET",
                "prizes",
                action="load prize",
                params={
                    "select": "*",
                    "id": f"eq.{prize_id}",
                    "company_id": f"eq.{company_id}",
                },
            )
        )
        if not rows:
            raise RecordNotFoundError(
                f"Prize {prize_id} does not exist for company {company_id}"
            )
        return PrizeRecord.from_row(rows[0])

    def _prize_has_winners(self, prize_id: int) -> bool:
        rows = self._rows(
            self._request(
                "GET",
                "roleta_participants",
                action="check prize usage",
                params={"select": "id", "prize_id": f"eq.{prize_id}", "limit": "1"},
            )
        )
        return bool(rows)

    def save_prize(
        self,
        company_id: int,
        *,
        name: str,
        prize_id: Optional[int] = None,
        position: Optional[int] = None,
    ) -> PrizeRecord:
        name = (name or "").strip()
        if not name:
            raise ValueError("Prize name must not be empty")

        if prize_id is None:
            if position is None:
                last = self._rows(
                    self._request(
                        "GET",
                        "prizes",
                        action="load prizes",
                        params={
                            "select": "position",
                            "company_id": f"eq.{company_id}",
                            "order": "position.desc",
                            "limit": "1",
                        },
                    )
                )
                position = (last[0].get("position") or 0) + 1 if last else 0
            rows = self._rows(
                self._request(
                    "POST",
                    "prizes",
                    action="save prize",
                    json={"company_id": company_id, "name": name, "position": position},
                    headers=self._write_headers(),
                )
            )
        else:
            current = self._company_prize(company_id, prize_id)
            if name != current.name and self._prize_has_winners(prize_id):
                raise PrizeInUseError(
                    "Prize was already won and cannot be renamed", prize_id=prize_id
                )
            body: dict[str, Any] = {"name": name}
            if position is not None:
                body["position"] = position
            rows = self._rows(
                self._request(
                    "PATCH",
                    "prizes",
                    action="save prize",
                    params={"id": f"eq.{prize_id}", "company_id": f"eq.{company_id}"},
                    json=body,
                    headers=self._write_headers(),
                )
            )
        if not rows:
            raise RemoteUnavailableError("Failed to save prize: empty response")
        return PrizeRecord.from_row(rows[0])

    def delete_prize(self, company_id: int, prize_id: int) -> None:
        self._company_prize(company_id, prize_id)
        if self._prize_has_winners(prize_id):
            raise PrizeInUseError(
                "Prize was already won and cannot be deleted", prize_id=prize_id
            )
        self._request(
            "DELETE",
            "prizes",
            action="delete prize",
            params={"id": f"eq.{prize_id}", "company_id": f"eq.{company_id}"},
            headers=self._write_headers("return=minimal"),
        )
        logger.info(f"Deleted prize {prize_id} of company {company_id}")

    def find_collaborator(
        self, company_id: int, code: str
    ) -> Optional[CollaboratorRecord]:
        if not code or not code.strip():
            return None
        rows = self._rows(
            self._request(
                "GET",
                "collaborators",
                action="verify collaborator code",
                params={
                    "select": "id,company_id,code,name",
                    "company_id": f"eq.{company_id}",
                    "code": f"eq.{code.strip().upper()}",
                    "limit": "1",
                },
            )
        )
        return CollaboratorRecord.from_row(rows[0]) if rows else None

    # -------- wheel participants --------
    def find_participant_by_email(
        self, company_id: int, email: str
    ) -> Optional[ParticipantRecord]:
        normalized = normalize_email(email)
        if normalized is None:
            return None
        rows = self._rows(
            self._request(
                "GET",
                "roleta_participants",
                action="look up participant",
                params={
                    "select": "*",
                    "company_id": f"eq.{company_id}",
                    "email": f"eq.{normalized}",
                    "order": "id.asc",
                    "limit": "1",
                },
            )
        )
        return ParticipantRecord.from_row(rows[0]) if rows else None

    def get_participant(self, participant_id: int) -> Optional[ParticipantRecord]:
        rows = self._rows(
            self._request(
                "GET",
                "roleta_participants",
                action="load participant",
                params={"select": "*", "id": f"eq.{participant_id}"},
            )
        )
        return ParticipantRecord.from_row(rows[0]) if rows else None

    def insert_participant(
        self,
        company_id: int,
        *,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        unique: bool = False,
    ) -> ParticipantRecord:
        normalized = normalize_email(email)
        body = {
            "name": name.strip(),
            "email": normalized,
            "phone": normalize_optional_text(phone),
            "company_id": company_id,
        }
        params: Optional[dict] = None
        prefer = "return=representation"
        if unique and normalized is not None:
            # Requires a unique (company_id, email) constraint on the server;
            # a duplicate comes back as an empty representation.
            params = {"on_conflict": "company_id,email"}
            prefer = "return=representation,resolution=ignore-duplicates"
        rows = self._rows(
            self._request(
                "POST",
                "roleta_participants",
                action="register participant",
                params=params,
                json=body,
                headers=self._write_headers(prefer),
            )
        )
        if not rows:
            if unique:
                raise DuplicateParticipantError(
                    "E-mail already registered for this company"
                )
            raise RemoteUnavailableError("Failed to register participant: empty response")
        logger.debug(
            f"Registered participant {rows[0].get('id')} ({mask_email(normalized)}) "
            f"for company {company_id}"
        )
        return ParticipantRecord.from_row(rows[0])

    def record_spin(
        self,
        participant_id: int,
        *,
        prize_id: Optional[int],
        prize_name: str,
        spun_at: datetime,
    ) -> ParticipantRecord:
        rows = self._rows(
            self._request(
                "PATCH",
                "roleta_participants",
                action="save spin result",
                params={"id": f"eq.{participant_id}", "spun_at": "is.null"},
                json={
                    "prize_id": prize_id,
                    "prize_name": prize_name,
                    "spun_at": spun_at.isoformat(),
                },
                headers=self._write_headers(),
            )
        )
        if rows:
            return ParticipantRecord.from_row(rows[0])
        # Nothing matched: either the participant is gone or already spun.
        existing = self.get_participant(participant_id)
        if existing is None:
            raise RecordNotFoundError(f"Participant {participant_id} does not exist")
        raise AlreadyParticipatedError(
            "Participant has already spun the wheel", participant_id=participant_id
        )

    def list_spin_history(self, company_id: int) -> list[ParticipantRecord]:
        rows = self._rows(
            self._request(
                "GET",
                "roleta_participants",
                action="load spin history",
                params={
                    "select": "*",
                    "company_id": f"eq.{company_id}",
                    "order": "spun_at.desc.nullsfirst,id.desc",
                },
            )
        )
        return [ParticipantRecord.from_row(row) for row in rows]

    # -------- organizer raffles --------
    def list_event_raffles(self, event_id: int) -> list[RaffleRecord]:
        rows = self._rows(
            self._request(
                "GET",
                "raffles",
                action="load raffles",
                params={"select": "*", "event_id": f"eq.{event_id}", "order": "id.asc"},
            )
        )
        return [RaffleRecord.from_row(row) for row in rows]

    def list_raffle_participants(
        self, raffle_ids: Iterable[int]
    ) -> list[RaffleEntryRecord]:
        ids = list(raffle_ids)
        if not ids:
            return []
        rows = self._rows(
            self._request(
                "GET",
                "raffle_participants",
                action="load raffle participants",
                params={"select": "*", "raffle_id": _in_filter(ids), "order": "id.asc"},
            )
        )
        return [RaffleEntryRecord.from_row(row) for row in rows]

    def list_raffle_winners(self, raffle_ids: Iterable[int]) -> list[RaffleWinnerRecord]:
        ids = list(raffle_ids)
        if not ids:
            return []
        rows = self._rows(
            self._request(
                "GET",
                "raffle_winners",
                action="load raffle winners",
                params={
                    "select": "*",
                    "raffle_id": _in_filter(ids),
                    "order": "drawn_at.asc,id.asc",
                },
            )
        )
        return [RaffleWinnerRecord.from_row(row) for row in rows]

    def record_raffle_winner(
        self, raffle_id: int, participant_id: int, *, drawn_at: datetime
    ) -> RaffleWinnerRecord:
        rows = self._rows(
            self._request(
                "POST",
                "raffle_winners",
                action="save raffle winner",
                json={
                    "raffle_id": raffle_id,
                    "participant_id": participant_id,
                    "drawn_at": drawn_at.isoformat(),
                },
                headers=self._write_headers(),
                on_conflict=AlreadyParticipatedError(
                    "Participant has already won this raffle",
                    participant_id=participant_id,
                ),
            )
        )
        if not rows:
            raise RemoteUnavailableError("Failed to save raffle winner: empty response")
        return RaffleWinnerRecord.from_row(rows[0])


__all__ = ["RestDataService"]
