from __future__ import annotations

import json
import os
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from flask import current_app

from module_anatomy.exceptions import AnatomyError, SeedError
from module_anatomy.extensions import db
from module_anatomy.services.registry import FlagRegistry, get_registry
from module_anatomy.utils.logging_utils import get_logger, log_context


@dataclass
class SeedReport:
    """Outcome of one seed run, per top-level branch."""

    seeded: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "SeedReport") -> "SeedReport":
        self.seeded.extend(other.seeded)
        self.failed.extend(other.failed)
        return self


class AnatomySeeder:
    """
    Replays declarative anatomy descriptors through the flag registry.

    Top-level branches are stored independently: a branch that fails is
    rolled back, recorded on the report and the run moves on, unless
    ``strict`` is set. A structurally malformed descriptor aborts the run
    before anything is written.
    """

    def __init__(self, registry: Optional[FlagRegistry] = None, *, strict: bool = False, data_dir: Optional[str] = None):
        self.registry = registry or get_registry()
        self.strict = strict
        self.data_dir = data_dir or current_app.config["ANATOMY_SEED_DATA_DIR"]

    @property
    def logger(self):
        return get_logger("seed")

    def load_descriptors(self, filename: str) -> List[Dict[str, Any]]:
        path = filename if os.path.isabs(filename) else os.path.join(self.data_dir, filename)
        try:
            with open(path, encoding="utf-8") as handle:
                payload = json.load(handle)
        except FileNotFoundError as exc:
            raise SeedError(f"Seed file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise SeedError(f"Seed file {path} is not valid JSON: {exc}") from exc

        if isinstance(payload, Mapping):
            payload = [payload]
        if not isinstance(payload, list):
            raise SeedError(f"Seed file {path} must hold a list of descriptors")
        return payload

    def check(self, descriptors: Sequence[Any]) -> None:
        for index, descriptor in enumerate(descriptors, start=1):
            if not isinstance(descriptor, Mapping):
                raise SeedError(f"Descriptor #{index} is not an object", path=(f"#{index}",))
            name = descriptor.get("name")
            flag = descriptor.get("flag")
            if not isinstance(name, str) or not name.strip():
                raise SeedError(f"Descriptor #{index} has no name", flag=flag, path=(f"#{index}",))
            if not isinstance(flag, str) or not flag.strip():
                raise SeedError(f"Descriptor '{name}' has no flag", name=name, path=(name,))
            children = descriptor.get("children")
            if children is not None and not isinstance(children, list):
                raise SeedError(f"Descriptor '{name}' children must be a list", flag=flag, name=name, path=(name,))

    def seed(self, descriptors: Sequence[Any]) -> SeedReport:
        self.check(descriptors)
        report = SeedReport()
        for index, descriptor in enumerate(descriptors, start=1):
            payload = dict(descriptor)
            payload.setdefault("ordering", index)
            flag = payload["flag"]
            name = payload["name"]

            binding, effective_flag = self.registry.resolve(flag)
            with log_context(flag=flag, effective_flag=effective_flag, anatomy=name):
                service = binding.service()
                try:
                    dto = service.load_data(payload)
                    entity = service.prepare_store(dto)
                except AnatomyError as exc:
                    db.session.rollback()
                    self.logger.warning("seed branch failed flag=%s name=%s: %s", flag, name, exc)
                    if self.strict:
                        raise
                    report.failed.append({"flag": flag, "name": name, "error": exc.to_dict()})
                    continue

                self.logger.info("seeded flag=%s name=%s id=%s via %s", flag, name, entity.id, effective_flag)
                report.seeded.append({"flag": flag, "name": name, "id": entity.id, "effective_flag": effective_flag})
        return report

    def run(self, files: Optional[Iterable[str]] = None) -> SeedReport:
        files = list(files or current_app.config["ANATOMY_SEED_FILES"])
        batches = [(filename, self.load_descriptors(filename)) for filename in files]
        for filename, descriptors in batches:
            try:
                self.check(descriptors)
            except SeedError as exc:
                raise SeedError(f"{filename}: {exc.message}", flag=exc.flag, name=exc.name, path=exc.path) from exc

        report = SeedReport()
        with self.advisory_lock():
            for filename, descriptors in batches:
                with log_context(seed_file=filename):
                    self.logger.info("seeding %s (%d descriptors)", filename, len(descriptors))
                    report.merge(self.seed(descriptors))
        return report

    @contextmanager
    def advisory_lock(self):
        """Serialise seed runs on PostgreSQL; other engines rely on the unique key."""
        engine = db.engine
        if engine.name != "postgresql":
            yield
            return

        key = int(current_app.config.get("ANATOMY_SEED_LOCK_KEY", 7305))
        with engine.connect() as conn:
            conn.execute(db.text("SELECT pg_advisory_lock(:key)"), {"key": key})
            conn.commit()
            self.logger.info("seed advisory lock acquired key=%s", key)
            try:
                yield
            finally:
                conn.execute(db.text("SELECT pg_advisory_unlock(:key)"), {"key": key})
                conn.commit()
                self.logger.info("seed advisory lock released key=%s", key)
