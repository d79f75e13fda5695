from __future__ import annotations

import argparse
import json
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import Category, MonthlyBudget, Transaction
from money import to_cents
from months import is_valid_month
from plaid_categories import is_plaid_category
from services import get_current_user_id

logger = logging.getLogger(__name__)

DATA_KINDS = ("categories", "transactions", "budgets")


@dataclass(frozen=True)
class LegacyFileSummary:
    kind: str
    path: Path
    records: int
    new_records: int


@dataclass(frozen=True)
class LegacyJSONPreview:
    files: list[LegacyFileSummary]
    rollover_migrations: int
    warnings: list[str] = field(default_factory=list)

    @property
    def new_records(self) -> int:
        return sum(f.new_records for f in self.files)


def _find_files(directory: Path, kind: str) -> list[Path]:
    return sorted(directory.glob(f"{kind}*.json"))


def _load_records(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path.name}: {exc.msg}") from exc
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of records in {path.name}")
    return [r for r in data if isinstance(r, dict) and r.get("id")]


def _legacy_is_rollover(record: dict[str, Any]) -> bool:
    if record.get("isRollover") is not None:
        return bool(record["isRollover"])
    return bool(record.get("isSavings", False))


def _needs_rollover_migration(record: dict[str, Any]) -> bool:
    return record.get("isRollover") is None and bool(record.get("isSavings"))


def _parse_legacy_date(value: Any) -> date:
    text = str(value or "").strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValueError(f"Invalid legacy date: {text}") from exc


class LegacyJSONImportService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def _existing_ids(self, kind: str) -> set[str]:
        model = {
            "categories": Category,
            "transactions": Transaction,
            "budgets": MonthlyBudget,
        }[kind]
        stmt = select(model.id).where(model.user_id == self.user_id)
        return set(self.session.scalars(stmt).all())

    def _read(self, directory: Path) -> dict[str, list[tuple[Path, list[dict[str, Any]]]]]:
        if not directory.is_dir():
            raise ValueError("Legacy data directory not found")
        loaded = {
            kind: [(path, _load_records(path)) for path in _find_files(directory, kind)]
            for kind in DATA_KINDS
        }
        if not any(loaded.values()):
            raise ValueError("No legacy data files found")
        return loaded

    def preview(self, directory: Path) -> LegacyJSONPreview:
        loaded = self._read(directory)
        warnings: list[str] = []
        files: list[LegacyFileSummary] = []
        migrations = 0

        for kind in DATA_KINDS:
            existing = self._existing_ids(kind)
            for path, records in loaded[kind]:
                new = [r for r in records if str(r["id"]) not in existing]
                files.append(
                    LegacyFileSummary(
                        kind=kind, path=path, records=len(records), new_records=len(new)
                    )
                )
                if kind == "categories":
                    migrations += sum(1 for r in new if _needs_rollover_migration(r))
                if kind == "budgets":
                    bad = [r for r in new if not is_valid_month(r.get("month"))]
                    if bad:
                        warnings.append(
                            f"{len(bad)} budget(s) in {path.name} have an invalid month "
                            "and will be skipped."
                        )

        return LegacyJSONPreview(
            files=files, rollover_migrations=migrations, warnings=warnings
        )

    def commit(self, directory: Path) -> dict[str, int]:
        loaded = self._read(directory)
        counts = {
            "inserted_categories": 0,
            "inserted_transactions": 0,
            "inserted_budgets": 0,
            "skipped_existing": 0,
            "skipped_invalid": 0,
            "rollover_migrations": 0,
        }

        existing = self._existing_ids("categories")
        for _path, records in loaded["categories"]:
            for r in records:
                category_id = str(r["id"])
                if category_id in existing:
                    counts["skipped_existing"] += 1
                    continue
                if _needs_rollover_migration(r):
                    counts["rollover_migrations"] += 1
                is_income = r.get("isIncome")
                self.session.add(
                    Category(
                        id=category_id,
                        user_id=self.user_id,
                        name=str(r.get("name") or category_id),
                        parent_id=r.get("parentId") or None,
                        is_custom=bool(
                            r.get("isCustom", not is_plaid_category(category_id))
                        ),
                        is_hidden=bool(r.get("isHidden", False)),
                        is_rollover=_legacy_is_rollover(r),
                        is_income=None if is_income is None else bool(is_income),
                    )
                )
                existing.add(category_id)
                counts["inserted_categories"] += 1

        existing = self._existing_ids("transactions")
        for path, records in loaded["transactions"]:
            for r in records:
                txn_id = str(r["id"])
                if txn_id in existing:
                    counts["skipped_existing"] += 1
                    continue
                try:
                    txn_date = _parse_legacy_date(r.get("date"))
                    amount_cents = to_cents(r.get("amount", 0))
                except (TypeError, ValueError) as exc:
                    logger.warning(
                        f"legacy_import_skip: file={path.name} id={txn_id} error={exc}"
                    )
                    counts["skipped_invalid"] += 1
                    continue
                self.session.add(
                    Transaction(
                        id=txn_id,
                        user_id=self.user_id,
                        date=txn_date,
                        name=str(r.get("name") or "")[:200],
                        amount_cents=amount_cents,
                        category_id=r.get("categoryId") or None,
                        pending=bool(r.get("pending", False)),
                        is_hidden=bool(r.get("isHidden", False)),
                        notes=r.get("notes"),
                    )
                )
                existing.add(txn_id)
                counts["inserted_transactions"] += 1

        existing = self._existing_ids("budgets")
        seen_keys: set[tuple[str, str]] = {
            (category_id, month)
            for category_id, month in self.session.execute(
                select(MonthlyBudget.category_id, MonthlyBudget.month).where(
                    MonthlyBudget.user_id == self.user_id
                )
            )
        }
        for path, records in loaded["budgets"]:
            for r in records:
                budget_id = str(r["id"])
                key = (str(r.get("categoryId") or ""), str(r.get("month") or ""))
                if budget_id in existing or key in seen_keys:
                    counts["skipped_existing"] += 1
                    continue
                amount = r.get("amount")
                if (
                    not key[0]
                    or not is_valid_month(key[1])
                    or not isinstance(amount, (int, float))
                    or not math.isfinite(amount)
                    or amount < 0
                ):
                    logger.warning(
                        f"legacy_import_skip: file={path.name} id={budget_id} "
                        f"month={key[1]!r}"
                    )
                    counts["skipped_invalid"] += 1
                    continue
                self.session.add(
                    MonthlyBudget(
                        id=budget_id,
                        user_id=self.user_id,
                        category_id=key[0],
                        month=key[1],
                        amount_cents=to_cents(amount),
                    )
                )
                existing.add(budget_id)
                seen_keys.add(key)
                counts["inserted_budgets"] += 1

        self.session.commit()
        logger.info(
            "legacy_import_done: "
            + " ".join(f"{key}={value}" for key, value in counts.items())
        )
        return counts


def main(argv: Optional[list[str]] = None) -> int:
    from database import init_db, session_scope

    parser = argparse.ArgumentParser(
        description="Import the JSON data files of the previous budget app."
    )
    parser.add_argument("directory", type=Path, help="Directory holding *_<user>.json files")
    parser.add_argument("--user-id", type=int, default=None)
    parser.add_argument(
        "--dry-run", action="store_true", help="Only report what would be imported"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    init_db()
    with session_scope() as session:
        service = LegacyJSONImportService(session, user_id=args.user_id)
        if args.dry_run:
            preview = service.preview(args.directory)
            for summary in preview.files:
                print(
                    f"{summary.kind}: {summary.path.name} "
                    f"records={summary.records} new={summary.new_records}"
                )
            print(f"rollover_migrations={preview.rollover_migrations}")
            for warning in preview.warnings:
                print(f"warning: {warning}")
            return 0
        counts = service.commit(args.directory)
    for key, value in counts.items():
        print(f"{key}={value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
