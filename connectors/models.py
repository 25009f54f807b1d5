"""Canonical data shapes shared by every connector.

`MetricsEnvelope` is what the HTTP layer returns for every metrics request,
whichever provider (or the mock generator) produced it. Field names are
snake_case in Python and camelCase on the wire.
"""
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator


class Platform(str, Enum):
    GOOGLE = 'google'
    META = 'meta'


PLATFORM_NAMES = {
    Platform.GOOGLE: 'Google Ads',
    Platform.META: 'Meta Ads',
}


class MetricKey(str, Enum):
    CLICKS = 'clicks'
    IMPRESSIONS = 'impressions'
    COST = 'cost'
    CONVERSIONS = 'conversions'
    REVENUE = 'revenue'
    ROAS = 'roas'
    CTR = 'ctr'
    CPC = 'cpc'
    REACH = 'reach'
    CPM = 'cpm'


class CampaignStatus(str, Enum):
    ACTIVE = 'Active'
    PAUSED = 'Paused'
    REMOVED = 'Removed'
    DELETED = 'Deleted'
    ARCHIVED = 'Archived'
    UNKNOWN = 'Unknown'


class ConnectionStatus(str, Enum):
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'


class DateRange(BaseModel):
    """Inclusive calendar range. `variation` busts the mock-data seed when set."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    start: date
    end: date
    variation: Optional[float] = Field(default=None, alias='_variation')

    @field_validator('start', 'end', mode='before')
    @classmethod
    def _truncate_to_day(cls, value):
        # datetime is a date subclass, so check it first
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            return value.strip()[:10]
        return value

    @model_validator(mode='after')
    def _check_order(self) -> 'DateRange':
        if self.start > self.end:
            raise ValueError(f'start {self.start} is after end {self.end}')
        return self

    def to_payload(self) -> Dict:
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)


class MetricPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    metric: MetricKey
    value: str
    delta_pct: float = Field(default=0.0, alias='deltaPct')


class CampaignRow(BaseModel):
    """One campaign line. Serialized positionally as [name, spend, cpc, revenue, roas, status]."""

    name: str
    spend: str
    cpc: str
    revenue: str
    roas: str
    status: CampaignStatus = CampaignStatus.UNKNOWN

    def as_row(self) -> List[str]:
        return [self.name, self.spend, self.cpc, self.revenue, self.roas, self.status.value]

    @classmethod
    def from_row(cls, row: List[str]) -> 'CampaignRow':
        name, spend, cpc, revenue, roas, status = row
        return cls(name=name, spend=spend, cpc=cpc, revenue=revenue, roas=roas, status=CampaignStatus(status))


class AccountInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    account_name: Optional[str] = Field(default=None, alias='accountName')
    account_id: Optional[str] = Field(default=None, alias='accountId')
    currency: Optional[str] = None
    time_zone: Optional[str] = Field(default=None, alias='timeZone')


class MetricsEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key_metrics: List[MetricPoint] = Field(default_factory=list, alias='keyMetrics')
    campaigns: List[CampaignRow] = Field(default_factory=list)
    account_info: AccountInfo = Field(default_factory=AccountInfo, alias='accountInfo')
    is_test_data: bool = Field(default=False, alias='isTestData')
    error: Optional[str] = None

    @field_serializer('campaigns')
    def _campaigns_as_rows(self, campaigns: List[CampaignRow]) -> List[List[str]]:
        return [c.as_row() for c in campaigns]

    def metric(self, key) -> Optional[MetricPoint]:
        key = MetricKey(key)
        for point in self.key_metrics:
            if point.metric == key:
                return point
        return None

    def to_payload(self) -> Dict:
        return self.model_dump(by_alias=True, mode='json', exclude_none=True)


class GoogleAuth(BaseModel):
    """Google sub-record. `refresh_token` is ciphertext at rest, plaintext once read back."""

    refresh_token: str = ''
    email: Optional[str] = None
    manager_id: Optional[str] = None
    manager_name: Optional[str] = None
    selected_external_id: Optional[str] = None
    selected_name: Optional[str] = None
    currency_code: Optional[str] = None


class MetaAuth(BaseModel):
    """Meta sub-record. `long_lived_token` is ciphertext at rest, plaintext once read back."""

    long_lived_token: str = ''
    meta_account_id: Optional[str] = None
    meta_ad_id: Optional[str] = None
    meta_ad_name: Optional[str] = None


class ConnectionRecord(BaseModel):
    shop_domain: str
    platform: Platform
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    updated_at: Optional[str] = None
    google: Optional[GoogleAuth] = None
    meta: Optional[MetaAuth] = None

    @property
    def is_connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED
