"""
Enumerations stored in the database.

Older deployments persisted job statuses and job types in two textual
encodings: an ASCII transliteration produced by the previous ORM (``Ch_duy_t``)
and the Vietnamese display text (``Chờ duyệt``). Both are read back as the
same member; new rows are written with the member value.
"""
import enum
from typing import Dict, Optional, Tuple

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class UserRole(str, enum.Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    SALES = "Sales"
    TECHNICIAN = "Technician"
    NOT_ASSIGN = "NOT_ASSIGN"


class LegacyEncodedEnum(str, enum.Enum):
    """Enum whose members also answer to legacy ASCII and display encodings.

    Subclasses provide ``_encodings()``: member -> (display, ascii_legacy, *aliases).
    The first entry is the display label.
    """

    @classmethod
    def _encodings(cls) -> Dict["LegacyEncodedEnum", Tuple[str, ...]]:
        raise NotImplementedError

    @property
    def label(self) -> str:
        return self._encodings()[self][0]

    @property
    def legacy_code(self) -> str:
        return self._encodings()[self][1]

    def stored_forms(self) -> Tuple[str, ...]:
        """Every string this member may be persisted as."""
        return (self.value,) + self._encodings()[self]

    @classmethod
    def parse(cls, raw) -> "LegacyEncodedEnum":
        if isinstance(raw, cls):
            return raw
        if raw is None:
            raise ValueError(f"{cls.__name__} is required")
        text = str(raw).strip()
        for member in cls:
            if text == member.value or text == member.name or text in cls._encodings()[member]:
                return member
        raise ValueError(
            f"Invalid {cls.__name__}: {text!r}. Must be one of: "
            + ", ".join(m.label for m in cls)
        )

    @classmethod
    def try_parse(cls, raw) -> Optional["LegacyEncodedEnum"]:
        try:
            return cls.parse(raw)
        except ValueError:
            return None


class JobStatus(LegacyEncodedEnum):
    NEW = "New"
    ASSIGNED = "Assigned"
    PENDING_APPROVAL = "PendingApproval"
    APPROVED = "Approved"
    FINALIZED = "Finalized"

    @classmethod
    def _encodings(cls):
        return _JOB_STATUS_ENCODINGS


_JOB_STATUS_ENCODINGS = {
    JobStatus.NEW: ("Mới", "M_i"),
    JobStatus.ASSIGNED: ("Đã phân công", "ph_n_c_ng", "Dang_thuc_hien", "Đang thực hiện"),
    JobStatus.PENDING_APPROVAL: ("Chờ duyệt", "Ch_duy_t"),
    JobStatus.APPROVED: ("Hoàn thành", "Ho_n_th_nh"),
    JobStatus.FINALIZED: ("Đã quyết toán", "Da_quyet_toan"),
}


class JobType(LegacyEncodedEnum):
    NEW_INSTALL = "NewInstall"
    WARRANTY = "Warranty"
    REPAIR = "Repair"

    @classmethod
    def _encodings(cls):
        return _JOB_TYPE_ENCODINGS


_JOB_TYPE_ENCODINGS = {
    JobType.NEW_INSTALL: ("Lắp đặt mới", "L_p___t_m_i"),
    JobType.WARRANTY: ("Bảo hành", "B_o_h_nh"),
    JobType.REPAIR: ("Sửa chữa", "S_a_ch_a"),
}


class LegacyEnumType(TypeDecorator):
    """Stores the member value, loads any known encoding."""

    impl = String(50)
    cache_ok = True

    def __init__(self, enum_cls, *args, **kwargs):
        self.enum_cls = enum_cls
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls.parse(value).value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls.parse(value)
