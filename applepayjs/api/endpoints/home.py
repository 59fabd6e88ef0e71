from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from applepayjs.core.config import Settings
from applepayjs.core.dependencies import get_certificate_provider, get_settings
from applepayjs.schemas.applepay import HomeModel
from applepayjs.services.merchant_certificate import MerchantCertificateProvider

TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter()


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(
    request: Request,
    settings: Settings = Depends(get_settings),
    certificate_provider: MerchantCertificateProvider = Depends(get_certificate_provider),
):
    # Sync handler: certificate loading blocks, FastAPI runs it in the threadpool.
    # Merchant identifier and store name are read by the page script for ApplePaySession.
    model = HomeModel(
        merchant_id=certificate_provider.get_merchant_identifier(),
        store_name=settings.APPLEPAY_STORE_NAME,
    )
    return templates.TemplateResponse(request, "index.html", {"model": model})


@router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
