"""
FastAPI application for the Revend marketplace backend.

This application provides:
1. The ``send-email`` server-side function over HTTP (/functions/send-email)
2. Read access to the live product catalogue (/products, with search)

The app owns one RemoteService and one ProductStore. The store is started
in the lifespan handler, so catalogue responses reflect every change made
through the service while the app runs.

Run with:
    uv run uvicorn api.main:app --reload

Then visit http://localhost:8000/docs for interactive API documentation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.send_email import register_send_email
from backend.client import RemoteService, get_remote_service
from backend.errors import RemoteError
from stores.email_service import SEND_EMAIL_FUNCTION
from stores.products import ProductFilters, ProductStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("api")


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the remote service, register functions and start the catalogue."""
    logger.info("Starting Revend API")
    service = get_remote_service()
    if not service.functions.is_registered(SEND_EMAIL_FUNCTION):
        register_send_email(service)
    products = ProductStore(service=service)
    await products.start()

    app.state.service = service
    app.state.products = products
    yield
    await products.unsubscribe()
    logger.info("Shutting down")


app = FastAPI(
    title="Revend Marketplace API",
    description="""
    Backend surface for the Revend B2B marketplace for refurbished IT equipment.

    ## Endpoints

    - `/functions/send-email` - Render an email template and send it to a user
    - `/products` - Search the live catalogue (single and batch listings)
    - `/products/categories` - Categories present in the catalogue
    - `/products/{id}` - One listing
    """,
    version="1.0.0",
    lifespan=lifespan,
)


def get_service(request: Request) -> RemoteService:
    return request.app.state.service


def get_products(request: Request) -> ProductStore:
    return request.app.state.products


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "revend-marketplace"}


# =============================================================================
# Functions
# =============================================================================

@app.post("/functions/send-email", tags=["Functions"])
async def send_email(body: dict[str, Any], service: RemoteService = Depends(get_service)):
    """
    Send one templated email.

    Body: ``{"type": <email type>, "userId": <profile id>, ...template variables}``
    """
    try:
        return await service.functions.invoke(SEND_EMAIL_FUNCTION, body)
    except RemoteError as e:
        logger.warning(f"send-email failed: {e}")
        return JSONResponse(status_code=400, content={"error": e.message})


# =============================================================================
# Catalogue
# =============================================================================

@app.get("/products", tags=["Catalogue"])
def search_products(
    q: str = "",
    category: Optional[str] = None,
    condition: Optional[str] = None,
    location: Optional[str] = None,
    min_price: Optional[float] = Query(default=None, alias="minPrice"),
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
    products: ProductStore = Depends(get_products),
):
    """Search the catalogue. Every filter is optional."""
    filters = ProductFilters(
        category=category,
        condition=condition,
        location=location,
        min_price=min_price,
        max_price=max_price,
    )
    return [listing.model_dump(mode="json") for listing in products.search(q, filters)]


@app.get("/products/categories", tags=["Catalogue"])
def get_categories(products: ProductStore = Depends(get_products)):
    return products.categories


@app.get("/products/{product_id}", tags=["Catalogue"])
def get_product(product_id: str, products: ProductStore = Depends(get_products)):
    listing = products.get_by_id(product_id)
    if listing is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    return listing.model_dump(mode="json")
