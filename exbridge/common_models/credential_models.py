from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Mapping, Optional, Tuple

from exbridge.normalizer import camel_case

SECRET_FIELDS = (
    "api_key",
    "secret",
    "password",
    "login",
    "uid",
    "account_id",
    "token",
    "twofa",
    "private_key",
    "wallet_address",
)


class Credential(BaseModel):
    """Exchange identifier plus the secrets a private call needs.

    Field names are snake_case; the wire names are the library's camelCase
    (``apiKey``, ``accountId``, ``privateKey``, ``walletAddress``). Secret values are kept out
    of ``repr()``; use :meth:`presence` when a credential has to be logged.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=camel_case,
        populate_by_name=True,
    )

    name: str  # exchange id, e.g. "binance"
    api_key: Optional[str] = Field(default=None, repr=False)
    secret: Optional[str] = Field(default=None, repr=False)
    password: Optional[str] = Field(default=None, repr=False)
    login: Optional[str] = Field(default=None, repr=False)
    uid: Optional[str] = Field(default=None, repr=False)
    account_id: Optional[str] = Field(default=None, repr=False)
    token: Optional[str] = Field(default=None, repr=False)
    twofa: Optional[str] = Field(default=None, repr=False)
    private_key: Optional[str] = Field(default=None, repr=False)
    wallet_address: Optional[str] = Field(default=None, repr=False)

    @field_validator(*SECRET_FIELDS, mode="before")
    @classmethod
    def empty_is_absent(cls, v):
        if v == "":
            return None
        return v

    def shape(self) -> Tuple[str, Dict[str, str]]:
        """Split into ``(exchange_id, secret_payload)``.

        The payload carries only the fields that were set, keyed by wire name.
        Unset fields are left out entirely rather than sent as null.
        """
        payload = self.model_dump(by_alias=True, exclude_none=True, exclude={"name"})
        return self.name, payload

    def presence(self) -> Dict[str, bool]:
        """Wire name -> whether the field is set. Safe to log."""
        return {camel_case(f): getattr(self, f) is not None for f in SECRET_FIELDS}

    def missing(self, required: Mapping[str, bool]) -> List[str]:
        """Wire names the exchange requires that this credential does not set.

        :param required: The library's requirement map, e.g. ``{"apiKey": True, "uid": False}``.
        """
        present = self.presence()
        return [k for k, needed in required.items() if needed and not present.get(k, False)]
