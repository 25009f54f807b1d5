"""Campaign Pulse HTTP API.

Run locally:
  uvicorn backend:app --reload --port 8000

The host app passes the shop identity in the `X-Shop-Domain` header. Metrics
routes always answer HTTP 200 with an envelope; failures are reported in its
`error` field.
"""
import json
from typing import Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from connectors import oauth_server
from connectors.config import AppConfig, load_config
from connectors.connection_store import ConnectionStore, build_connection_store
from connectors.crypto import TokenCipher
from connectors.date_ranges import format_display_date, range_duration_days, resolve_preset
from connectors.dependencies import get_config, get_metrics_service, get_shop_domain, get_store
from connectors.logs import configure_logging, get_logger
from connectors.metrics_service import MetricsService
from connectors.models import PLATFORM_NAMES, DateRange, MetricsEnvelope, Platform

logger = get_logger('backend')

router = APIRouter()


class ConnectionIntentRequest(BaseModel):
    intent: Literal['connect', 'disconnect'] = 'connect'


class GoogleCredentialsRequest(BaseModel):
    refresh_token: str
    email: Optional[str] = None
    manager_id: Optional[str] = None
    manager_name: Optional[str] = None
    external_id: Optional[str] = None
    account_name: Optional[str] = None
    currency_code: Optional[str] = None


class MetaCredentialsRequest(BaseModel):
    long_lived_token: str
    meta_account_id: Optional[str] = None
    meta_ad_id: Optional[str] = None
    meta_ad_name: Optional[str] = None


def parse_date_range(raw: Optional[str]) -> Optional[DateRange]:
    """`dateRange` JSON from the client, or None when it is absent or unusable."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        return DateRange.model_validate(data)
    except ValueError as ex:
        logger.warning('Invalid date range format: %s', ex)
        return None


def _failure(message: str) -> dict:
    return MetricsEnvelope(error=message, is_test_data=True).to_payload()


def _metrics_response(platform: Optional[str], raw_range: Optional[str], shop_domain: Optional[str],
                      config: AppConfig, service: MetricsService) -> dict:
    if not shop_domain:
        return _failure('Invalid session')
    if not platform:
        return _failure('Platform is required')
    try:
        date_range = parse_date_range(raw_range)
        envelope = service.fetch_metrics(platform, date_range, shop_domain)
    except Exception:
        logger.exception('Error in metrics API.')
        return _failure('Failed to fetch metrics')

    payload = envelope.to_payload()
    payload.update({
        'isTestMode': config.test_mode,
        'platform': platform,
        'dateRange': date_range.to_payload() if date_range else None,
    })
    return payload


def create_app(config: Optional[AppConfig] = None, store: Optional[ConnectionStore] = None) -> FastAPI:
    config = config or load_config()
    configure_logging(config.log_file)
    if store is None:
        store = build_connection_store(config, TokenCipher(config.encryption_key))

    app = FastAPI(title='Campaign Pulse API')
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.app_url],
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    app.state.config = config
    app.state.store = store
    app.state.metrics_service = MetricsService(config, store)

    app.include_router(oauth_server.router)
    app.include_router(router)
    logger.info('Campaign Pulse API ready (environment=%s, mock data=%s, store=%s).',
                config.environment, config.mock_data_enabled, type(store).__name__)
    return app


@router.get('/health')
def health_check():
    """Health check endpoint"""
    return {'status': 'ok', 'service': 'Campaign Pulse API'}


@router.get('/metrics')
def get_metrics(platform: Optional[str] = None, dateRange: Optional[str] = None,
                shop_domain: Optional[str] = Depends(get_shop_domain), config: AppConfig = Depends(get_config),
                service: MetricsService = Depends(get_metrics_service)):
    return _metrics_response(platform, dateRange, shop_domain, config, service)


@router.post('/metrics')
def post_metrics(platform: Optional[str] = Form(default=None), dateRange: Optional[str] = Form(default=None),
                 shop_domain: Optional[str] = Depends(get_shop_domain), config: AppConfig = Depends(get_config),
                 service: MetricsService = Depends(get_metrics_service)):
    return _metrics_response(platform, dateRange, shop_domain, config, service)


@router.get('/metrics/presets/{preset_id}')
def get_preset(preset_id: str):
    """Concrete range for a preset id; unknown ids resolve to this month."""
    date_range = resolve_preset(preset_id)
    return {
        'preset': preset_id,
        'start': date_range.start.isoformat(),
        'end': date_range.end.isoformat(),
        'display': {'start': format_display_date(date_range.start), 'end': format_display_date(date_range.end)},
        'days': range_duration_days(date_range),
    }


def _require_shop(shop_domain: Optional[str]) -> str:
    if not shop_domain:
        raise HTTPException(status_code=400, detail='Missing X-Shop-Domain header')
    return shop_domain


@router.get('/connections')
def list_connections(shop_domain: Optional[str] = Depends(get_shop_domain), config: AppConfig = Depends(get_config),
                     store: ConnectionStore = Depends(get_store)):
    shop_domain = _require_shop(shop_domain)
    google = store.get_google_auth(shop_domain)
    meta = store.get_meta_auth(shop_domain)
    return {
        'shop': shop_domain,
        'isTestMode': config.test_mode,
        'mockConnections': config.mock_connections_enabled,
        'connections': {
            Platform.GOOGLE.value: {
                'name': PLATFORM_NAMES[Platform.GOOGLE],
                'connected': store.is_connected(Platform.GOOGLE, shop_domain),
                'accountName': google.selected_name if google else None,
                'accountId': google.selected_external_id if google else None,
            },
            Platform.META.value: {
                'name': PLATFORM_NAMES[Platform.META],
                'connected': store.is_connected(Platform.META, shop_domain),
                'accountName': meta.meta_ad_name if meta else None,
                'accountId': meta.meta_account_id if meta else None,
            },
        },
    }


@router.post('/connections/google/credentials')
def save_google_credentials(request: GoogleCredentialsRequest, shop_domain: Optional[str] = Depends(get_shop_domain),
                            store: ConnectionStore = Depends(get_store)):
    shop_domain = _require_shop(shop_domain)
    if not request.refresh_token.strip():
        return {'ok': False, 'error': 'refresh_token is required'}
    store.save_google_auth(
        shop_domain,
        request.refresh_token.strip(),
        email=request.email,
        manager_id=request.manager_id,
        manager_name=request.manager_name,
        selected_external_id=request.external_id,
        selected_name=request.account_name,
        currency_code=request.currency_code,
    )
    return {'ok': True, 'platform': Platform.GOOGLE.value, 'connected': True}


@router.post('/connections/meta/credentials')
def save_meta_credentials(request: MetaCredentialsRequest, shop_domain: Optional[str] = Depends(get_shop_domain),
                          store: ConnectionStore = Depends(get_store)):
    shop_domain = _require_shop(shop_domain)
    if not request.long_lived_token.strip():
        return {'ok': False, 'error': 'long_lived_token is required'}
    store.save_meta_auth(
        shop_domain,
        request.long_lived_token.strip(),
        meta_account_id=request.meta_account_id,
        meta_ad_id=request.meta_ad_id,
        meta_ad_name=request.meta_ad_name,
    )
    return {'ok': True, 'platform': Platform.META.value, 'connected': True}


@router.post('/connections/{platform}')
def set_connection(platform: Platform, request: ConnectionIntentRequest,
                   shop_domain: Optional[str] = Depends(get_shop_domain),
                   store: ConnectionStore = Depends(get_store)):
    shop_domain = _require_shop(shop_domain)
    connected = request.intent == 'connect'
    store.set_connected(platform, connected, shop_domain)
    return {'ok': True, 'platform': platform.value, 'connected': connected}


app = create_app()


if __name__ == '__main__':
    import uvicorn
    uvicorn.run(app, host='0.0.0.0', port=8000)
