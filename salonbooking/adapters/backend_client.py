"""
Hosted backend client for appointment data.

Talks to the PostgREST-style REST interface of the hosted database
(``/rest/v1/<table>``). The backend is expected to enforce its own overlap
or uniqueness constraint; a rejected insert comes back as HTTP 409.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date as Date
from datetime import time
from typing import Any, Dict, Iterable, List, Optional

import pendulum
import requests

from ..domain.exceptions import (
    AppointmentNotFoundError,
    BackendAPIError,
    SlotConflictError,
)
from ..domain.models import Appointment, AppointmentStatus, BookingRequest

logger = logging.getLogger(__name__)


class BackendRestClient:
    """
    Client for the hosted backend's appointments table.

    Requests are synchronous (``requests``); the async methods run them in a
    worker thread so the client satisfies ``AppointmentStoreProtocol``.
    """

    TABLE = "appointments"

    def __init__(self, url: str, api_key: str, timeout: int = 30):
        """
        Initialize the backend client.

        Args:
            url: Base URL of the hosted project, e.g. https://xyz.supabase.co
            api_key: Anonymous or service API key
            timeout: Request timeout in seconds
        """
        self.base_url = url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.TABLE}"

    # Async protocol surface

    async def fetch_appointments(
        self,
        salon_id: str,
        date: Date,
        stylist_id: Optional[str] = None,
    ) -> List[Appointment]:
        return await asyncio.to_thread(self.fetch_appointments_sync, salon_id, date, stylist_id)

    async def list_appointments(
        self,
        salon_id: Optional[str] = None,
        dates: Optional[Iterable[Date]] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        return await asyncio.to_thread(self.list_appointments_sync, salon_id, dates, statuses)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        return await asyncio.to_thread(self.get_appointment_sync, appointment_id)

    async def create_appointment(self, request: BookingRequest) -> Appointment:
        return await asyncio.to_thread(self.create_appointment_sync, request)

    async def update_status(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        return await asyncio.to_thread(self.update_status_sync, appointment_id, status)

    # Synchronous implementation

    def fetch_appointments_sync(
        self,
        salon_id: str,
        date: Date,
        stylist_id: Optional[str] = None,
    ) -> List[Appointment]:
        params = {
            "select": "*",
            "salon_id": f"eq.{salon_id}",
            "date": f"eq.{date.isoformat()}",
            "order": "start_time.asc",
        }
        if stylist_id:
            params["or"] = f"(stylist_id.eq.{stylist_id},stylist_id.is.null)"

        return self._parse_rows(self._request("GET", params=params))

    def list_appointments_sync(
        self,
        salon_id: Optional[str] = None,
        dates: Optional[Iterable[Date]] = None,
        statuses: Optional[Iterable[AppointmentStatus]] = None,
    ) -> List[Appointment]:
        params = {"select": "*", "order": "date.asc,start_time.asc"}
        if salon_id:
            params["salon_id"] = f"eq.{salon_id}"
        if dates is not None:
            params["date"] = "in.({})".format(",".join(d.isoformat() for d in dates))
        if statuses is not None:
            params["status"] = "in.({})".format(",".join(s.value for s in statuses))

        return self._parse_rows(self._request("GET", params=params))

    def get_appointment_sync(self, appointment_id: str) -> Appointment:
        rows = self._request("GET", params={"select": "*", "id": f"eq.{appointment_id}"})
        if not rows:
            raise AppointmentNotFoundError(f"Appointment not found: {appointment_id}")
        return self._parse_row(rows[0])

    def create_appointment_sync(self, request: BookingRequest) -> Appointment:
        payload = {
            "user_id": request.user_id,
            "salon_id": request.salon_id,
            "service_id": request.service_id,
            "stylist_id": request.stylist_id,
            "date": request.date.isoformat(),
            "start_time": request.start_time.strftime("%H:%M:%S"),
            "end_time": request.end_time.strftime("%H:%M:%S"),
            "status": AppointmentStatus.PENDING.value,
            "notes": request.notes,
        }

        try:
            rows = self._request("POST", json=payload, prefer="return=representation")
        except SlotConflictError as exc:
            exc.request = request
            raise

        if not rows:
            raise BackendAPIError("Backend did not return the created appointment")
        return self._parse_row(rows[0])

    def update_status_sync(self, appointment_id: str, status: AppointmentStatus) -> Appointment:
        rows = self._request(
            "PATCH",
            params={"id": f"eq.{appointment_id}"},
            json={"status": status.value},
            prefer="return=representation",
        )
        if not rows:
            raise AppointmentNotFoundError(f"Appointment not found: {appointment_id}")
        return self._parse_row(rows[0])

    def _request(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = requests.request(
                method,
                self.table_url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise BackendAPIError(f"Failed to reach backend: {e}") from e

        if response.status_code == 409:
            raise SlotConflictError(f"Backend rejected the booking: {response.text}")

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise BackendAPIError(f"Backend request failed: {e}") from e

        if not response.content:
            return []
        return response.json()

    def _parse_rows(self, rows: List[Dict[str, Any]]) -> List[Appointment]:
        appointments: List[Appointment] = []
        for row in rows:
            try:
                appointments.append(self._parse_row(row))
            except (KeyError, ValueError) as e:
                logger.warning("Skipping unparseable appointment row %s: %s", row.get("id"), e)
        return appointments

    @staticmethod
    def _parse_row(row: Dict[str, Any]) -> Appointment:
        """
        Parse a table row into an Appointment.

        Row format:
        {
            "id": "...", "user_id": "...", "salon_id": "...",
            "service_id": "...", "stylist_id": null,
            "date": "2024-01-01", "start_time": "10:00:00",
            "end_time": "11:00:00", "status": "pending", "notes": "",
            "created_at": "2024-01-01T08:00:00+00:00"
        }
        """
        start_time = time.fromisoformat(row["start_time"])
        end_time = time.fromisoformat(row["end_time"])
        if start_time >= end_time:
            raise ValueError(f"start_time {start_time} is not before end_time {end_time}")

        created_at = row.get("created_at")
        return Appointment(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            salon_id=str(row["salon_id"]),
            service_id=str(row["service_id"]),
            stylist_id=row.get("stylist_id"),
            date=pendulum.parse(row["date"], exact=True),
            start_time=start_time,
            end_time=end_time,
            status=AppointmentStatus(row.get("status", AppointmentStatus.PENDING.value)),
            notes=row.get("notes") or "",
            created_at=pendulum.parse(created_at) if created_at else None,
        )
