"""Currency -- the ISO 4217 currencies a school may bill and pay staff in."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    """Code, minor-unit count and display symbol of one currency."""

    code: str
    decimal_places: int
    name: str
    symbol: str = ""

    @property
    def minor_unit(self) -> Decimal:
        """The smallest amount the currency can express (kobo for NGN)."""
        return Decimal(1).scaleb(-self.decimal_places)

    @property
    def rounding_tolerance(self) -> Decimal:
        """Sums that differ by less than one minor unit are treated as equal."""
        return self.minor_unit


def _info(code: str, places: int, name: str, symbol: str = "") -> tuple[str, CurrencyInfo]:
    return code, CurrencyInfo(code, places, name, symbol)


class CurrencyRegistry:
    """Lookup of supported currencies by code.

    Codes are matched case-insensitively after stripping whitespace.
    """

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = dict(
        [
            _info("NGN", 2, "Nigerian Naira", "₦"),
            _info("GHS", 2, "Ghanaian Cedi", "GH₵"),
            _info("KES", 2, "Kenyan Shilling", "KSh"),
            _info("UGX", 0, "Ugandan Shilling", "USh"),
            _info("TZS", 2, "Tanzanian Shilling", "TSh"),
            _info("RWF", 0, "Rwandan Franc", "FRw"),
            _info("ZAR", 2, "South African Rand", "R"),
            _info("XOF", 0, "West African CFA Franc", "CFA"),
            _info("XAF", 0, "Central African CFA Franc", "FCFA"),
            _info("USD", 2, "US Dollar", "$"),
            _info("GBP", 2, "Pound Sterling", "£"),
            _info("EUR", 2, "Euro", "€"),
            _info("JPY", 0, "Japanese Yen", "¥"),
            _info("KWD", 3, "Kuwaiti Dinar"),
        ]
    )

    @staticmethod
    def _normalize(code: object) -> str:
        return code.upper().strip() if isinstance(code, str) else ""

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        return cls._CURRENCIES.get(cls._normalize(code))

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.get_info(code) is not None

    @classmethod
    def require(cls, code: str) -> CurrencyInfo:
        """The currency for ``code``; ``ValueError`` when it is not supported."""
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return info

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        return cls.require(code).decimal_places

    @classmethod
    def get_rounding_tolerance(cls, code: str) -> Decimal:
        return cls.require(code).rounding_tolerance

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES)
