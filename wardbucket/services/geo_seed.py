"""
Seed loader - imports the geo hierarchy from CSV exports.

File layout (in ``data_dir``):

    pngProvinces.csv   code, name                         (no header)
    pngDistricts.csv   province code, code, name          (no header)
    pngLLGs.csv        district code, code, name          (no header)
    pngWards.csv       llg code, code, name               (no header)
    pngLocations.csv   ward code, code, name              (no header)
    abgRegions.csv     ABGRegionID, ABGRegionName
    abgDistricts.csv   ABGRegionID, ABGDistrictID, ABGDistrictName
    abgConstituencies.csv  ABGDistrictID, ConstituencyID, ConstituencyName
    mkaLLGs.csv        code, name                         (no header)
    mkaWards.csv       region code, code, name            (no header)
    mkaLocations.csv   ward code, code, name              (no header)

Every row is upserted by (name, parent), so running the import twice leaves
one copy of each node. Missing files, rows whose parent code is unknown and
rows whose name cannot be a path segment are skipped with a warning.
"""
import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from wardbucket.core.exceptions import ValidationError
from wardbucket.models import (
    GeoRegion,
    KIND_MODELS,
    NodeKind,
    NodeMovementHistory,
    Structure,
)
from wardbucket.services.geo_paths import build_path, clean_name
from wardbucket.services.geo_repository import GeoNodeRepository, parent_fields_for

logger = logging.getLogger(__name__)

GEO_REGIONS = [
    {"name": Structure.PNG.value, "type": "National", "level": 0, "order": 0},
    {"name": Structure.ABG.value, "type": "Autonomous Region", "level": 0, "order": 1},
    {"name": Structure.MKA.value, "type": "Assembly", "level": 0, "order": 2},
]

DEFAULT_MKA_REGIONS = [("1", "Motu"), ("2", "Koitabu")]

# Children before parents
RESET_ORDER = [
    NodeKind.LOCATION,
    NodeKind.WARD,
    NodeKind.LLG,
    NodeKind.DISTRICT,
    NodeKind.PROVINCE,
    NodeKind.CONSTITUENCY,
    NodeKind.ABG_DISTRICT,
    NodeKind.REGION,
    NodeKind.MKA_WARD,
    NodeKind.MKA_REGION,
    NodeKind.GEO_REGION,
]


@dataclass
class SeedReport:
    created: Dict[str, int] = field(default_factory=dict)
    updated: Dict[str, int] = field(default_factory=dict)
    skipped: int = 0

    def count(self, kind: NodeKind, created: bool) -> None:
        bucket = self.created if created else self.updated
        bucket[kind.value] = bucket.get(kind.value, 0) + 1

    @property
    def total_created(self) -> int:
        return sum(self.created.values())


def read_csv_rows(path: Path, has_header: bool = False) -> List:
    """
    Rows of a CSV file with empty lines dropped and cells trimmed.
    Headered files give dicts, the rest give lists. Missing file gives [].
    """
    if not path.exists():
        logger.warning(f"CSV file not found: {path.name}")
        return []

    with open(path, newline="", encoding="utf-8-sig") as f:
        if has_header:
            return [
                {k.strip(): (v or "").strip() for k, v in row.items() if k}
                for row in csv.DictReader(f)
                if any((v or "").strip() for v in row.values())
            ]
        return [
            [cell.strip() for cell in row]
            for row in csv.reader(f)
            if any(cell.strip() for cell in row)
        ]


def _order_from_code(code: str, fallback: int = 0) -> int:
    try:
        return int(code)
    except (TypeError, ValueError):
        return fallback


class GeoSeeder:
    """Upserts seed rows through the generic repository."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = GeoNodeRepository(db)
        self.report = SeedReport()

    async def reset(self) -> None:
        """Remove every geo record and the movement history."""
        logger.info("Resetting geo tables...")
        for kind in RESET_ORDER:
            await self.db.execute(delete(KIND_MODELS[kind]))
            logger.info(f"- {kind.value} records deleted")
        await self.db.execute(delete(NodeMovementHistory))
        await self.db.flush()

    async def seed_geo_regions(self) -> Dict[str, GeoRegion]:
        roots = {}
        for fields in GEO_REGIONS:
            region = await self.repo.find_geo_region(fields["name"])
            if region is None:
                region = GeoRegion(**fields)
                self.db.add(region)
                logger.info(f"- Created {fields['name']} region")
            else:
                region.type = fields["type"]
                region.order = fields["order"]
            roots[fields["name"]] = region
        await self.repo.flush()
        return roots

    async def upsert(self, kind: NodeKind, parent_kind: NodeKind, parent, name: str,
                     code: Optional[str], order: int):
        """
        Create or refresh one node under ``parent``.

        Raises ValidationError when the name is empty or holds the path separator.
        """
        name = clean_name(name)
        fields = {
            "code": code,
            "path": build_path(parent.path, name),
            "level": parent.level + 1,
            "order": order,
        }
        record = await self.repo.find_by_name(kind, name, parent_kind, parent.id)
        if record is None:
            record = await self.repo.create(
                kind, name=name, **fields, **parent_fields_for(kind, parent_kind, parent.id)
            )
            self.report.count(kind, created=True)
        else:
            await self.repo.update(record, **fields)
            self.report.count(kind, created=False)
        return record

    async def _seed_level(self, rows, kind, parent_kind, parents, code_col, name_col,
                          parent_col=None, fixed_parent=None) -> Dict[str, object]:
        created = {}
        for row in rows:
            try:
                name, code = row[name_col], row[code_col]
                parent = fixed_parent if fixed_parent is not None else parents.get(row[parent_col])
            except (IndexError, KeyError):
                logger.warning(f"Skipping malformed {kind.value} row: {row}")
                self.report.skipped += 1
                continue
            if parent is None:
                logger.warning(f"Skipping {kind.value} {name} - parent code {row[parent_col]} not found")
                self.report.skipped += 1
                continue
            try:
                created[code] = await self.upsert(
                    kind, parent_kind, parent, name, code, _order_from_code(code)
                )
            except ValidationError as e:
                logger.warning(f"Skipping {kind.value} row {row}: {e.message}")
                self.report.skipped += 1
        return created

    async def _seed_locations(self, rows, parents, parent_kind, name_col=2, parent_col=0) -> None:
        grouped: Dict[str, List[str]] = {}
        for row in rows:
            if len(row) <= max(name_col, parent_col):
                logger.warning(f"Skipping malformed location row: {row}")
                self.report.skipped += 1
                continue
            grouped.setdefault(row[parent_col], []).append(row[name_col])

        for parent_code, names in grouped.items():
            parent = parents.get(parent_code)
            if parent is None:
                logger.warning(f"Skipping {len(names)} locations - parent code {parent_code} not found")
                self.report.skipped += len(names)
                continue
            for index, name in enumerate(names):
                try:
                    await self.upsert(NodeKind.LOCATION, parent_kind, parent, name, None, index)
                except ValidationError as e:
                    logger.warning(f"Skipping location {name!r} under {parent.path}: {e.message}")
                    self.report.skipped += 1
            logger.info(f"- Added {len(names)} locations to {parent.path}")

    async def seed_png(self, data_dir: Path, root: GeoRegion) -> None:
        logger.info("Seeding PNG data...")
        provinces = await self._seed_level(
            read_csv_rows(data_dir / "pngProvinces.csv"), NodeKind.PROVINCE, NodeKind.GEO_REGION,
            {}, code_col=0, name_col=1, fixed_parent=root,
        )
        districts = await self._seed_level(
            read_csv_rows(data_dir / "pngDistricts.csv"), NodeKind.DISTRICT, NodeKind.PROVINCE,
            provinces, code_col=1, name_col=2, parent_col=0,
        )
        llgs = await self._seed_level(
            read_csv_rows(data_dir / "pngLLGs.csv"), NodeKind.LLG, NodeKind.DISTRICT,
            districts, code_col=1, name_col=2, parent_col=0,
        )
        wards = await self._seed_level(
            read_csv_rows(data_dir / "pngWards.csv"), NodeKind.WARD, NodeKind.LLG,
            llgs, code_col=1, name_col=2, parent_col=0,
        )
        await self._seed_locations(read_csv_rows(data_dir / "pngLocations.csv"), wards, NodeKind.WARD)

    async def seed_abg(self, data_dir: Path, root: GeoRegion) -> None:
        logger.info("Seeding ABG data...")
        regions = await self._seed_level(
            read_csv_rows(data_dir / "abgRegions.csv", has_header=True), NodeKind.REGION,
            NodeKind.GEO_REGION, {}, code_col="ABGRegionID", name_col="ABGRegionName",
            fixed_parent=root,
        )
        districts = await self._seed_level(
            read_csv_rows(data_dir / "abgDistricts.csv", has_header=True), NodeKind.ABG_DISTRICT,
            NodeKind.REGION, regions, code_col="ABGDistrictID", name_col="ABGDistrictName",
            parent_col="ABGRegionID",
        )
        await self._seed_level(
            read_csv_rows(data_dir / "abgConstituencies.csv", has_header=True), NodeKind.CONSTITUENCY,
            NodeKind.ABG_DISTRICT, districts, code_col="ConstituencyID", name_col="ConstituencyName",
            parent_col="ABGDistrictID",
        )

    async def seed_mka(self, data_dir: Path, root: GeoRegion) -> None:
        logger.info("Seeding MKA data...")
        rows = read_csv_rows(data_dir / "mkaLLGs.csv")
        if not rows:
            logger.info("No MKA regions found, creating defaults")
            rows = [list(r) for r in DEFAULT_MKA_REGIONS]
        regions = await self._seed_level(
            rows, NodeKind.MKA_REGION, NodeKind.GEO_REGION, {}, code_col=0, name_col=1,
            fixed_parent=root,
        )
        wards = await self._seed_level(
            read_csv_rows(data_dir / "mkaWards.csv"), NodeKind.MKA_WARD, NodeKind.MKA_REGION,
            regions, code_col=1, name_col=2, parent_col=0,
        )
        await self._seed_locations(read_csv_rows(data_dir / "mkaLocations.csv"), wards, NodeKind.MKA_WARD)


async def seed_from_directory(db: AsyncSession, data_dir, reset: bool = False) -> SeedReport:
    """Import every structure from ``data_dir``; the caller commits."""
    data_dir = Path(data_dir)
    seeder = GeoSeeder(db)
    if reset:
        await seeder.reset()

    roots = await seeder.seed_geo_regions()
    await seeder.seed_png(data_dir, roots[Structure.PNG.value])
    await seeder.seed_abg(data_dir, roots[Structure.ABG.value])
    await seeder.seed_mka(data_dir, roots[Structure.MKA.value])

    logger.info(
        f"Geo data seeding completed: {seeder.report.total_created} created, "
        f"{sum(seeder.report.updated.values())} updated, {seeder.report.skipped} skipped"
    )
    return seeder.report
