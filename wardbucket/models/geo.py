"""
SQLAlchemy models for the geographic hierarchy

Three parallel national structures hang off fixed GeoRegion roots:

    PNG: GeoRegion -> Province -> District -> LLG -> Ward -> Location (village)
    ABG: GeoRegion -> Region -> AbgDistrict -> Constituency -> Location (village)
    MKA: GeoRegion -> MkaRegion -> MkaWard -> Location (section)

Every record stores its ``kind`` explicitly, and every kind has its own table
because each kind has a different parent reference.
"""
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declared_attr
from datetime import datetime, timezone
import enum
import uuid

from wardbucket.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Structure(str, enum.Enum):
    """National structure a node belongs to (named after its GeoRegion)."""
    PNG = "PNG"
    ABG = "ABG"
    MKA = "MKA"


class NodeKind(str, enum.Enum):
    GEO_REGION = "geo_region"
    PROVINCE = "province"
    DISTRICT = "district"
    LLG = "llg"
    WARD = "ward"
    LOCATION = "location"
    REGION = "region"
    ABG_DISTRICT = "abg_district"
    CONSTITUENCY = "constituency"
    MKA_REGION = "mka_region"
    MKA_WARD = "mka_ward"


class KindMixin:
    """Stores the record's kind discriminant."""

    KIND: NodeKind

    @declared_attr
    def kind(cls):
        return Column(String(32), nullable=False, default=cls.KIND.value)


class GeoNodeMixin(KindMixin):
    """Columns shared by every node below a GeoRegion."""

    # Parent kind -> column holding the reference to it
    PARENT_FIELDS: dict = {}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    code = Column(String(50), nullable=True)
    path = Column(String(1000), nullable=False, index=True)
    level = Column(Integer, nullable=False, default=0)
    order = Column("order", Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def parent_id(self):
        """Id held by whichever parent reference is populated."""
        for field in self.PARENT_FIELDS.values():
            value = getattr(self, field)
            if value is not None:
                return value
        return None

    @property
    def parent_kind(self):
        for parent_kind, field in self.PARENT_FIELDS.items():
            if getattr(self, field) is not None:
                return parent_kind
        return None

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, path={self.path}, level={self.level})>"


class GeoRegion(KindMixin, Base):
    """
    Fixed top-level structure root (PNG, ABG, MKA)
    Created once at initialization, never deleted by the hierarchy service
    """
    __tablename__ = "geo_regions"
    KIND = NodeKind.GEO_REGION

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(10), nullable=False, unique=True)
    type = Column(String(50), nullable=False)  # National, Autonomous Region, Assembly
    level = Column(Integer, nullable=False, default=0)
    order = Column("order", Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    code = None
    parent_id = None

    @property
    def path(self) -> str:
        """Roots keep no stored path; their synthetic path is their name."""
        return self.name

    def __repr__(self):
        return f"<GeoRegion(id={self.id}, name={self.name})>"


# PNG structure

class Province(GeoNodeMixin, Base):
    __tablename__ = "provinces"
    KIND = NodeKind.PROVINCE
    PARENT_FIELDS = {NodeKind.GEO_REGION: "geo_region_id"}

    geo_region_id = Column(Uuid, ForeignKey("geo_regions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "geo_region_id", name="uq_province_name_geo_region"),
    )


class District(GeoNodeMixin, Base):
    __tablename__ = "districts"
    KIND = NodeKind.DISTRICT
    PARENT_FIELDS = {NodeKind.PROVINCE: "province_id"}

    province_id = Column(Uuid, ForeignKey("provinces.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "province_id", name="uq_district_name_province"),
    )


class LLG(GeoNodeMixin, Base):
    """Local-level government"""
    __tablename__ = "llgs"
    KIND = NodeKind.LLG
    PARENT_FIELDS = {NodeKind.DISTRICT: "district_id"}

    district_id = Column(Uuid, ForeignKey("districts.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "district_id", name="uq_llg_name_district"),
    )


class Ward(GeoNodeMixin, Base):
    __tablename__ = "wards"
    KIND = NodeKind.WARD
    PARENT_FIELDS = {NodeKind.LLG: "llg_id"}

    llg_id = Column(Uuid, ForeignKey("llgs.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "llg_id", name="uq_ward_name_llg"),
    )


# ABG structure

class Region(GeoNodeMixin, Base):
    __tablename__ = "abg_regions"
    KIND = NodeKind.REGION
    PARENT_FIELDS = {NodeKind.GEO_REGION: "geo_region_id"}

    geo_region_id = Column(Uuid, ForeignKey("geo_regions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "geo_region_id", name="uq_region_name_geo_region"),
    )


class AbgDistrict(GeoNodeMixin, Base):
    __tablename__ = "abg_districts"
    KIND = NodeKind.ABG_DISTRICT
    PARENT_FIELDS = {NodeKind.REGION: "region_id"}

    region_id = Column(Uuid, ForeignKey("abg_regions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "region_id", name="uq_abg_district_name_region"),
    )


class Constituency(GeoNodeMixin, Base):
    __tablename__ = "constituencies"
    KIND = NodeKind.CONSTITUENCY
    PARENT_FIELDS = {NodeKind.ABG_DISTRICT: "abg_district_id"}

    abg_district_id = Column(Uuid, ForeignKey("abg_districts.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "abg_district_id", name="uq_constituency_name_abg_district"),
    )


# MKA structure

class MkaRegion(GeoNodeMixin, Base):
    __tablename__ = "mka_regions"
    KIND = NodeKind.MKA_REGION
    PARENT_FIELDS = {NodeKind.GEO_REGION: "geo_region_id"}

    geo_region_id = Column(Uuid, ForeignKey("geo_regions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "geo_region_id", name="uq_mka_region_name_geo_region"),
    )


class MkaWard(GeoNodeMixin, Base):
    __tablename__ = "mka_wards"
    KIND = NodeKind.MKA_WARD
    PARENT_FIELDS = {NodeKind.MKA_REGION: "mka_region_id"}

    mka_region_id = Column(Uuid, ForeignKey("mka_regions.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("name", "mka_region_id", name="uq_mka_ward_name_mka_region"),
    )


class Location(GeoNodeMixin, Base):
    """
    Leaf node: a village under a Ward or Constituency, or a section under an
    MkaWard. Exactly one of the three parent references is set.
    """
    __tablename__ = "locations"
    KIND = NodeKind.LOCATION
    PARENT_FIELDS = {
        NodeKind.WARD: "ward_id",
        NodeKind.CONSTITUENCY: "constituency_id",
        NodeKind.MKA_WARD: "mka_ward_id",
    }

    ward_id = Column(Uuid, ForeignKey("wards.id"), nullable=True, index=True)
    constituency_id = Column(Uuid, ForeignKey("constituencies.id"), nullable=True, index=True)
    mka_ward_id = Column(Uuid, ForeignKey("mka_wards.id"), nullable=True, index=True)

    __table_args__ = (
        UniqueConstraint("name", "ward_id", name="uq_location_name_ward"),
        UniqueConstraint("name", "constituency_id", name="uq_location_name_constituency"),
        UniqueConstraint("name", "mka_ward_id", name="uq_location_name_mka_ward"),
        UniqueConstraint("path", name="uq_location_path"),
        CheckConstraint(
            "(CASE WHEN ward_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN constituency_id IS NOT NULL THEN 1 ELSE 0 END)"
            " + (CASE WHEN mka_ward_id IS NOT NULL THEN 1 ELSE 0 END) = 1",
            name="ck_location_single_parent",
        ),
    )


# Kind -> model; the one place that maps the discriminant to storage
KIND_MODELS = {
    NodeKind.GEO_REGION: GeoRegion,
    NodeKind.PROVINCE: Province,
    NodeKind.DISTRICT: District,
    NodeKind.LLG: LLG,
    NodeKind.WARD: Ward,
    NodeKind.LOCATION: Location,
    NodeKind.REGION: Region,
    NodeKind.ABG_DISTRICT: AbgDistrict,
    NodeKind.CONSTITUENCY: Constituency,
    NodeKind.MKA_REGION: MkaRegion,
    NodeKind.MKA_WARD: MkaWard,
}
