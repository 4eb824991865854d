"""Vendor classifier for ACS device records.

Classification is a single pass over an ordered rule list:

1. Identity rules match against the device id (``OUI-ProductClass-Serial``),
   the most reliable signal, for ZTE, Huawei and FiberHome in that order.
2. Descriptive rules match against manufacturer, product class and model
   name for ZTE, Huawei, FiberHome, Nokia and Technicolor in that order.

The first rule with a matching pattern wins; within a rule, pattern order
does not matter. Some FiberHome patterns ("AN", "FH") are only two letters
long and can match unrelated ids; they are kept as-is because existing
fleets were classified with them and rule order lets stronger matches for
ZTE and Huawei take precedence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from cpe_manager.devices import record as rec
from cpe_manager.models import DeviceRecord, VendorTag

logger = logging.getLogger(__name__)


class MatchField(str, Enum):
    DEVICE_ID = "device_id"
    DESCRIPTION = "description"


@dataclass(frozen=True)
class VendorRule:
    """Substring patterns that identify one vendor from one record field.

    Patterns are stored lowercase and matched against lowercased text.
    """

    vendor: VendorTag
    match_field: MatchField
    patterns: tuple[str, ...]

    def matches(self, text: str) -> str | None:
        """Return the first pattern found in *text*, or None."""
        for pattern in self.patterns:
            if pattern in text:
                return pattern
        return None


def _rule(vendor: VendorTag, field: MatchField, *patterns: str) -> VendorRule:
    return VendorRule(vendor, field, tuple(p.lower() for p in patterns))


DEFAULT_RULES: tuple[VendorRule, ...] = (
    # -- identity (device id) --
    _rule(
        VendorTag.ZTE, MatchField.DEVICE_ID,
        "ZXHN", "ZTE", "F477", "F660", "F670", "F609", "F612", "F601",
        "F680", "F668", "F822", "ZXONT", "GPON-ONU", "EPON-ONU",
    ),
    _rule(
        VendorTag.HUAWEI, MatchField.DEVICE_ID,
        "HG", "EG", "ONT", "MA5608T", "HS8545M", "HG8240", "HG8245",
        "HG8247", "EG8145", "EG8247",
    ),
    _rule(
        VendorTag.FIBERHOME, MatchField.DEVICE_ID,
        "AN", "FH", "AN5506", "AN5516", "HG6245N", "HG6243C",
    ),
    # -- descriptive (manufacturer / product class / model) --
    _rule(
        VendorTag.ZTE, MatchField.DESCRIPTION,
        "zte", "zxhn", "zhongxing", "f477", "f660", "f670", "f609", "f612",
        "f601", "f680", "f668", "f822", "f663n", "f650", "zxont", "zxa10",
        "zxv10",
    ),
    _rule(
        VendorTag.HUAWEI, MatchField.DESCRIPTION,
        "huawei", "hg", "eg", "hg8240", "hg8245", "hg8247", "eg8145",
        "eg8247", "eg8240", "hs8545m", "ma5608t", "smartax",
    ),
    _rule(
        VendorTag.FIBERHOME, MatchField.DESCRIPTION,
        "fiberhome", "an", "an5506", "an5516", "hg6245n", "hg6243c", "wuhan",
    ),
    _rule(VendorTag.NOKIA, MatchField.DESCRIPTION, "nokia", "alcatel"),
    _rule(VendorTag.TECHNICOLOR, MatchField.DESCRIPTION, "technicolor", "thomson"),
)


class VendorClassifier:
    """Maps a device record to exactly one ``VendorTag``.

    Parameters
    ----------
    rules:
        Ordered rules to evaluate. Defaults to ``DEFAULT_RULES``.
    """

    def __init__(self, rules: tuple[VendorRule, ...] | list[VendorRule] | None = None) -> None:
        self._rules = tuple(rules) if rules is not None else DEFAULT_RULES

    @property
    def rules(self) -> tuple[VendorRule, ...]:
        return self._rules

    def classify(self, record: DeviceRecord) -> VendorTag:
        """Classify *record*. Never raises; unreadable records are generic."""
        try:
            return self._classify(record)
        except Exception:
            logger.warning("Vendor classification failed, using generic", exc_info=True)
            return VendorTag.GENERIC

    def __call__(self, record: DeviceRecord) -> VendorTag:
        return self.classify(record)

    def _classify(self, record: DeviceRecord) -> VendorTag:
        texts = {
            MatchField.DEVICE_ID: rec.device_id(record).lower(),
            MatchField.DESCRIPTION: rec.identity_text(record),
        }
        for rule in self._rules:
            pattern = rule.matches(texts[rule.match_field])
            if pattern is not None:
                logger.debug(
                    "Classified %s as %s (%s pattern %r)",
                    rec.device_id(record) or "<no id>",
                    rule.vendor.value,
                    rule.match_field.value,
                    pattern,
                )
                return rule.vendor
        return VendorTag.GENERIC


_default_classifier = VendorClassifier()


def classify(record: DeviceRecord) -> VendorTag:
    """Classify *record* with the default rule set."""
    return _default_classifier.classify(record)
