"""Tariff configuration: defaults, YAML loading, storage and legacy upgrades.

Stored tariff documents carry a schema_version. Older shapes are upgraded
on read, so the billing functions only ever see the current TariffConfig.

    1: public_lighting was a bare number (always a flat charge)
    2: public_lighting became {mode, amount}
    3: flag_surcharge gained an optional secondary flag
"""

import copy
import json
import logging
import math
import os
from pathlib import Path

import yaml

from .db import get_connection
from .models import (
    FixedLighting,
    FlagSurcharge,
    PercentageLighting,
    RateComponent,
    SecondarySurcharge,
    TariffConfig,
)

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 3

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "tariffs.yaml"

DEFAULT_TARIFFS = {
    "schema_version": CURRENT_SCHEMA_VERSION,
    "tusd": {"rate_per_unit": 0.45, "rate_before_taxes": 0.38},
    "te": {"rate_per_unit": 0.35, "rate_before_taxes": 0.29},
    "flag_surcharge": {
        "label": "Verde",
        "rate_per_unit": 0.00,
        "secondary": {"active": False, "label": "Amarela", "rate_per_unit": 0.01885},
    },
    "public_lighting": {"mode": "fixed", "amount": 15.00},
}

LIGHTING_MODES = {
    FixedLighting.mode: FixedLighting,
    PercentageLighting.mode: PercentageLighting,
}


class TariffConfigError(ValueError):
    """A tariff document that cannot be read or used."""
    pass


def detect_schema_version(data: dict) -> int:
    """Work out the version of a document saved without schema_version."""
    if "schema_version" in data:
        return int(data["schema_version"])
    if not isinstance(data.get("public_lighting"), dict):
        return 1
    if "secondary" not in data.get("flag_surcharge", {}):
        return 2
    return CURRENT_SCHEMA_VERSION


def normalize_tariff_data(data: dict) -> dict:
    """Upgrade a stored tariff document to the current schema version."""
    data = copy.deepcopy(data)
    version = detect_schema_version(data)

    if version > CURRENT_SCHEMA_VERSION:
        raise TariffConfigError(
            f"Tariff schema version {version} is newer than supported ({CURRENT_SCHEMA_VERSION})"
        )

    if version < 2:
        logger.debug("Upgrading tariff document from version 1: flat lighting charge")
        data["public_lighting"] = {"mode": "fixed", "amount": data.get("public_lighting", 0) or 0}

    if version < 3:
        logger.debug("Upgrading tariff document from version 2: adding secondary flag")
        flag = data.setdefault("flag_surcharge", {"label": "", "rate_per_unit": 0})
        flag.setdefault("secondary", {"active": False, "label": "", "rate_per_unit": 0})

    data["schema_version"] = CURRENT_SCHEMA_VERSION
    return data


def tariffs_from_dict(data: dict) -> TariffConfig:
    """Build a TariffConfig from a (possibly legacy) document."""
    data = normalize_tariff_data(data)
    try:
        flag = data["flag_surcharge"]
        secondary = flag.get("secondary")
        lighting = data["public_lighting"]

        lighting_cls = LIGHTING_MODES.get(lighting["mode"])
        if lighting_cls is None:
            raise TariffConfigError(f"Unknown public lighting mode: {lighting['mode']!r}")

        return TariffConfig(
            tusd=RateComponent(
                rate_per_unit=float(data["tusd"]["rate_per_unit"]),
                rate_before_taxes=float(data["tusd"].get("rate_before_taxes", 0)),
            ),
            te=RateComponent(
                rate_per_unit=float(data["te"]["rate_per_unit"]),
                rate_before_taxes=float(data["te"].get("rate_before_taxes", 0)),
            ),
            flag_surcharge=FlagSurcharge(
                label=flag.get("label", ""),
                rate_per_unit=float(flag["rate_per_unit"]),
                secondary=SecondarySurcharge(
                    active=bool(secondary["active"]),
                    label=secondary.get("label", ""),
                    rate_per_unit=float(secondary["rate_per_unit"]),
                )
                if secondary
                else None,
            ),
            public_lighting=lighting_cls(amount=float(lighting["amount"])),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise TariffConfigError(f"Malformed tariff document: missing or invalid {e}") from e


def tariffs_to_dict(tariffs: TariffConfig) -> dict:
    """Serialize a TariffConfig as a current-version document."""
    flag = tariffs.flag_surcharge
    secondary = flag.secondary or SecondarySurcharge(active=False, label="", rate_per_unit=0.0)
    return {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "tusd": {
            "rate_per_unit": tariffs.tusd.rate_per_unit,
            "rate_before_taxes": tariffs.tusd.rate_before_taxes,
        },
        "te": {
            "rate_per_unit": tariffs.te.rate_per_unit,
            "rate_before_taxes": tariffs.te.rate_before_taxes,
        },
        "flag_surcharge": {
            "label": flag.label,
            "rate_per_unit": flag.rate_per_unit,
            "secondary": {
                "active": secondary.active,
                "label": secondary.label,
                "rate_per_unit": secondary.rate_per_unit,
            },
        },
        "public_lighting": {
            "mode": tariffs.public_lighting.mode,
            "amount": tariffs.public_lighting.amount,
        },
    }


def default_tariffs() -> TariffConfig:
    """The tariff configuration used until the user saves their own."""
    return tariffs_from_dict(DEFAULT_TARIFFS)


def validate_tariffs(tariffs: TariffConfig) -> TariffConfig:
    """Raise TariffConfigError unless every rate and amount is finite and >= 0."""
    values = {
        "tusd.rate_per_unit": tariffs.tusd.rate_per_unit,
        "te.rate_per_unit": tariffs.te.rate_per_unit,
        "flag_surcharge.rate_per_unit": tariffs.flag_surcharge.rate_per_unit,
        "public_lighting.amount": tariffs.public_lighting.amount,
    }
    if tariffs.flag_surcharge.secondary is not None:
        values["flag_surcharge.secondary.rate_per_unit"] = (
            tariffs.flag_surcharge.secondary.rate_per_unit
        )

    for name, value in values.items():
        if not math.isfinite(value) or value < 0:
            raise TariffConfigError(f"{name} must be a non-negative number, got {value}")
    return tariffs


def get_config_path() -> Path:
    """Tariff YAML location: METER_TARIFFS_PATH or config/tariffs.yaml."""
    env_path = os.environ.get("METER_TARIFFS_PATH")
    return Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def load_tariffs_from_yaml(config_path: Path | None = None) -> TariffConfig:
    """Load and validate a tariff definition from a YAML file."""
    path = config_path or get_config_path()
    with open(path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise TariffConfigError(f"{path} is not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise TariffConfigError(f"{path} does not contain a tariff mapping")
    return validate_tariffs(tariffs_from_dict(data.get("tariffs", data)))


def get_tariffs(db_path: Path | None = None) -> TariffConfig:
    """The stored tariff configuration, or the defaults when none is saved."""
    with get_connection(db_path) as conn:
        row = conn.execute("SELECT schema_version, data FROM tariff_config WHERE id = 1").fetchone()

    if row is None:
        return default_tariffs()

    data = json.loads(row["data"])
    data.setdefault("schema_version", row["schema_version"])
    return tariffs_from_dict(data)


def save_tariffs(tariffs: TariffConfig, db_path: Path | None = None) -> TariffConfig:
    """Replace the stored tariff configuration."""
    validate_tariffs(tariffs)
    with get_connection(db_path) as conn:
        conn.execute(
            """INSERT OR REPLACE INTO tariff_config (id, schema_version, data, updated_at)
               VALUES (1, ?, ?, CURRENT_TIMESTAMP)""",
            (CURRENT_SCHEMA_VERSION, json.dumps(tariffs_to_dict(tariffs))),
        )
        conn.commit()
    logger.info("Saved tariff configuration")
    return tariffs


def reset_tariffs(db_path: Path | None = None) -> TariffConfig:
    """Drop the stored configuration so the defaults apply again."""
    with get_connection(db_path) as conn:
        conn.execute("DELETE FROM tariff_config WHERE id = 1")
        conn.commit()
    return default_tariffs()
