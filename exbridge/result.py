"""Tagged success/failure values returned by every facade call."""

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

from exbridge.errors import BridgeError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    ok = True

    def unwrap(self) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> "Result":
        """Apply ``fn`` to the value; a :class:`BridgeError` it raises becomes an ``Err``."""
        try:
            return Ok(fn(self.value))
        except BridgeError as e:
            return Err(e)

    def map_err(self, fn: Callable[[BridgeError], BridgeError]) -> "Result":
        return self


@dataclass(frozen=True)
class Err:
    error: BridgeError

    ok = False

    @property
    def reason(self) -> str:
        return self.error.reason

    def unwrap(self) -> Any:
        raise self.error

    def map(self, fn: Callable[[Any], Any]) -> "Result":
        return self

    def map_err(self, fn: Callable[[BridgeError], BridgeError]) -> "Result":
        return Err(fn(self.error))


Result = Union[Ok, Err]
