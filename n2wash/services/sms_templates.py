"""SMS texts (Polish, ASCII-folded where the carrier charset matters)"""

from datetime import date
from typing import Optional

from ..config import FRONTEND_URL
from ..shared.timeutils import format_date_pl


def reservation_edit_url(instance_slug: str, confirmation_code: str) -> str:
    """Link to the customer's "my reservation" page"""
    base = FRONTEND_URL.rstrip("/")
    return f"{base}/res?code={confirmation_code}&instance={instance_slug}"


def _edit_part(edit_url: Optional[str]) -> str:
    return f" Zmien lub anuluj: {edit_url}" if edit_url else ""


def build_verification_sms(instance_name: str, code: str) -> str:
    return f"Kod potwierdzajacy {instance_name}: {code}"


def build_confirmation_sms(
    instance_name: str,
    day: date,
    time: str,
    auto_confirm: bool,
    google_maps_url: Optional[str] = None,
    edit_url: Optional[str] = None,
) -> str:
    parts = format_date_pl(day)
    when = f"{parts['day_num']} {parts['month_name_full']} o {time}"
    if auto_confirm:
        maps_part = f" Dojazd: {google_maps_url}" if google_maps_url else ""
        return f"{instance_name}: Rezerwacja potwierdzona! {when}.{maps_part}{_edit_part(edit_url)}"
    return (
        f"{instance_name}: Otrzymalismy prosbe o rezerwacje: {when}. "
        f"Potwierdzimy ja wkrotce.{_edit_part(edit_url)}"
    )


def build_reminder_1day_sms(instance_name: str, time: str, edit_url: Optional[str] = None) -> str:
    return f"{instance_name}: Przypomnienie - jutro o {time} masz wizyte.{_edit_part(edit_url)}"


def build_reminder_1hour_sms(instance_name: str, time: str, edit_url: Optional[str] = None) -> str:
    return f"{instance_name}: Przypomnienie - za godzine ({time}) masz wizyte.{_edit_part(edit_url)}"


def build_vehicle_ready_sms(instance_name: str, vehicle_plate: Optional[str] = None) -> str:
    plate_part = f" ({vehicle_plate})" if vehicle_plate else ""
    return f"{instance_name}: Twoj samochod{plate_part} jest gotowy do odbioru. Zapraszamy!"
