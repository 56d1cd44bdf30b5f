"""
Records returned by the Chronogolf private API.

The API is undocumented and its payloads vary between endpoints: fields go
missing, come back null, or change type. Every field is therefore optional,
unknown fields are ignored, and null lists decode as empty lists.
"""

from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field


class RemoteRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _none_as_empty(value: Any) -> Any:
    return [] if value is None else value


NullableList = BeforeValidator(_none_as_empty)


class AppConfig(RemoteRecord):
    """The window.CHRONOGOLF_CONFIG blob embedded in the club landing page."""

    csrf_token: str | None = Field(default=None, alias="CSRF_TOKEN")
    has_session: bool | None = Field(default=None, alias="HAS_SESSION")
    club_id: int | None = Field(default=None, alias="CLUB_ID")
    club_currency: str | None = Field(default=None, alias="CLUB_CURRENCY")
    locale: str | None = Field(default=None, alias="LOCALE")


class Affiliation(RemoteRecord):
    id: int | None = None
    role: str | None = None
    organization_id: int | None = None
    organization_type: str | None = None
    provider_id: int | None = None
    affiliation_type_id: int | None = None


class SessionInfo(RemoteRecord):
    id: int | None = None
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    affiliations: Annotated[list[Affiliation], NullableList] = Field(default_factory=list)


class Course(RemoteRecord):
    id: int | None = None
    name: str | None = None
    holes: int | None = None
    round_duration: int | None = None
    par: int | None = None
    club_id: int | None = None
    online_booking_enabled: bool | None = None
    default_product_id: int | None = None


class TeeTime(RemoteRecord):
    id: int | None = None
    course_id: int | None = None
    date: str | None = None
    start_time: str | None = None
    hole: int | None = None
    round: int | None = None
    active: bool | None = None
    format: str | None = None
    blocked: bool | None = None
    free_slots: int | None = None

    @property
    def day(self) -> str:
        """Start of the slot as YYYY-MM-DDTHH:MM."""
        return f"{self.date}T{(self.start_time or '')[:5]}"


class RoundLine(RemoteRecord):
    """A priced line item (green fee, cart...) attached to one player's round."""

    id: int | None = None
    round_id: int | None = None
    discount_id: int | None = None
    discountable_product_id: int | None = None
    product_id: int | None = None
    product_rule_id: int | None = None
    payment_transaction_id: int | None = None
    original_unit_price: float | None = None
    unit_price: float | None = None
    unit_quantity: int | None = None
    amount_subtotal: float | None = None
    amount_tax: float | None = None
    amount_total: float | None = None


class Round(RemoteRecord):
    id: int | None = None
    affiliation_type_id: int | None = None
    club_id: int | None = None
    paid: bool | None = None
    reservation_id: int | None = None
    state: str | None = None
    user_id: int | None = None
    round_lines: Annotated[list[RoundLine], NullableList] = Field(
        default_factory=list,
        validation_alias=AliasChoices("round_lines", "round_lines_attributes"),
    )


class Reservation(RemoteRecord):
    id: int | None = None
    club_id: int | None = None
    teetime_id: int | None = None
    state: str | None = None
    holes: int | None = None
    made_online: bool | None = None
    created_user_id: int | None = None
    source: str | None = None
    teetime: TeeTime | None = None
    rounds: Annotated[list[Round], NullableList] = Field(default_factory=list)
