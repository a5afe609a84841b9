"""
Core data models for the Magnify fetch service

Defines the UI-facing ProfileRecord, the wire-shape RawUserRecord, asset
descriptors and the terminal result carried back to the presentation layer.
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

ANIMATED_MARKER = "a_"
ANIMATED_EXTENSION = "gif"
STATIC_EXTENSION = "png"

# Probe order when resolving a cached variant
KNOWN_EXTENSIONS = (STATIC_EXTENSION, ANIMATED_EXTENSION)

ELEVATED_TIER_CODE = 1
MAX_USER_ID = 2**64 - 1


class AssetKind(str, Enum):
    AVATAR = "avatar"
    BANNER = "banner"

    @property
    def remote_segment(self) -> str:
        """Path segment used by the asset CDN"""
        return f"{self.value}s"


class ProfileRecord(BaseModel):
    """
    Normalized profile shown to the presentation layer.
    id == 0 means nothing has been fetched yet.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(default=0, ge=0, le=MAX_USER_ID)
    username: str = ""
    global_name: str = ""
    avatar_ref: str = ""
    banner_ref: str = ""
    created_at: int = 0  # not derivable from the user payload
    has_elevated_tier: bool = False

    def asset_ref(self, kind: AssetKind) -> str:
        return self.avatar_ref if kind is AssetKind.AVATAR else self.banner_ref


class RawUserRecord(BaseModel):
    """
    Mirror of the remote user schema.
    Only used while parsing a response; never leaves the profile client.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    username: str
    discriminator: Optional[str] = None
    global_name: Optional[str] = None
    avatar: Optional[str] = None
    bot: Optional[bool] = None
    system: Optional[bool] = None
    mfa_enabled: Optional[bool] = None
    banner: Optional[str] = None
    accent_color: Optional[int] = None
    locale: Optional[str] = None
    verified: Optional[bool] = None
    email: Optional[str] = None
    flags: Optional[int] = None
    premium_type: Optional[int] = None
    public_flags: Optional[int] = None
    avatar_decoration_data: Optional[Any] = None


class AssetRequest(BaseModel):
    """A located remote asset, ready for download"""

    model_config = ConfigDict(frozen=True)

    owner_id: int
    asset_ref: str
    kind: AssetKind
    extension: str
    remote_url: str


class CachedAsset(BaseModel):
    """An asset present in the local cache"""

    model_config = ConfigDict(frozen=True)

    local_path: str
    extension: str


class FetchStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCEEDED = "succeeded"
    PARTIALLY_SUCCEEDED = "partially_succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {FetchStatus.SUCCEEDED, FetchStatus.PARTIALLY_SUCCEEDED, FetchStatus.FAILED}
)


class ErrorInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class FetchResult(BaseModel):
    """Terminal outcome of one orchestrated fetch"""

    model_config = ConfigDict(frozen=True)

    identifier: str
    status: FetchStatus
    profile: ProfileRecord = Field(default_factory=ProfileRecord)
    assets: Dict[AssetKind, CachedAsset] = Field(default_factory=dict)
    failed_kinds: List[AssetKind] = Field(default_factory=list)
    skipped_kinds: List[AssetKind] = Field(default_factory=list)
    asset_errors: Dict[AssetKind, ErrorInfo] = Field(default_factory=dict)
    error: Optional[ErrorInfo] = None


class FetchView(BaseModel):
    """State read by the presentation layer; paths are already resolved"""

    model_config = ConfigDict(frozen=True)

    status: FetchStatus = FetchStatus.IDLE
    identifier: Optional[str] = None
    profile: ProfileRecord = Field(default_factory=ProfileRecord)
    assets: Dict[AssetKind, CachedAsset] = Field(default_factory=dict)
    failed_kinds: List[AssetKind] = Field(default_factory=list)
    skipped_kinds: List[AssetKind] = Field(default_factory=list)
    asset_errors: Dict[AssetKind, ErrorInfo] = Field(default_factory=dict)
    error: Optional[ErrorInfo] = None

    @classmethod
    def from_result(cls, result: FetchResult) -> "FetchView":
        return cls(**result.model_dump())
