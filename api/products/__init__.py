"""Product catalog endpoints."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query, Request, Security, status
from starlette.datastructures import UploadFile

from auth import get_current_user
from config import settings_conf
from errors import ValidationError
from products import MAX_PAGE, ProductManager, analyze_image
from reviews import ReviewManager

router = APIRouter(
    prefix="/products",
    tags=["Products"]
)

# Form field name -> products column
FORM_FIELDS = {
    'title': 'title',
    'description': 'description',
    'price': 'price',
    'originalPrice': 'original_price',
    'category': 'category',
    'subcategory': 'subcategory',
    'brand': 'brand',
    'condition': 'condition',
    'size': 'size',
    'color': 'color',
    'pattern': 'pattern',
    'style': 'style',
    'gender': 'gender',
    'material': 'material',
    'location': 'location',
    'tags': 'tags',
    'isAvailable': 'is_available',
    'shippingWeight': 'shipping_weight',
    'shippingFree': 'shipping_free',
    'shippingCost': 'shipping_cost'
}

BOOLEAN_FIELDS = {'is_available', 'shipping_free'}


def parse_bool(value: str, label: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ('true', '1', 'yes', 'on'):
        return True
    if lowered in ('false', '0', 'no', 'off'):
        return False
    raise ValidationError(f"{label} must be true or false")


async def read_product_form(request: Request):
    """Split a multipart product form into column values, files and image refs.

    Returns:
        Tuple of (fields, uploads, image_refs, delete_images). ``image_refs``
        is None unless the form carried text ``images`` entries.
    """
    form = await request.form()

    fields: Dict[str, Any] = {}
    for name, column in FORM_FIELDS.items():
        value = form.get(name)
        if value is None or isinstance(value, UploadFile):
            continue
        fields[column] = parse_bool(value, name) if column in BOOLEAN_FIELDS else value

    uploads: List[UploadFile] = []
    image_refs: Optional[List[str]] = None
    for item in form.getlist('images'):
        if isinstance(item, UploadFile):
            if item.filename:
                uploads.append(item)
        else:
            image_refs = (image_refs or []) + [item]

    delete_images = parse_bool(form.get('deleteImages') or 'false', 'deleteImages')
    return fields, uploads, image_refs, delete_images


@router.get("")
async def list_products(
    category: Optional[str] = None,
    condition: Optional[str] = None,
    seller: Optional[str] = None,
    price_min: Optional[float] = Query(None, alias="priceMin"),
    price_max: Optional[float] = Query(None, alias="priceMax"),
    search: Optional[str] = None,
    sort: str = "newest",
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: Optional[int] = Query(None, ge=1)
):
    """List products with filters, sorting and pagination."""
    limit = min(limit or settings_conf['default_page_limit'], settings_conf['max_page_limit'])
    return await ProductManager().list_products(
        category=category,
        condition=condition,
        seller=seller,
        price_min=price_min,
        price_max=price_max,
        search=search,
        sort=sort,
        page=page,
        limit=limit
    )


@router.get("/search")
async def search_products(q: Optional[str] = None):
    """Top matches for a free-text query."""
    return await ProductManager().search_products(q or '')


@router.get("/categories")
async def get_categories():
    """Categories that have at least one product."""
    return await ProductManager().get_categories()


@router.post("/analyze-image")
async def analyze_product_image(
    request: Request,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Guess category and attributes from an uploaded image's file name."""
    form = await request.form()
    upload = next(
        (
            item
            for name in ('image', 'images')
            for item in form.getlist(name)
            if isinstance(item, UploadFile) and item.filename
        ),
        None
    )
    if upload is None:
        raise ValidationError("Please upload an image file")
    return analyze_image(upload.filename)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    request: Request,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Create a product from a multipart form with one or more images."""
    fields, uploads, _, _ = await read_product_form(request)
    return await ProductManager().create_product(user['id'], fields, uploads)


@router.get("/{product_id}")
async def get_product(product_id: str):
    """Get a product with its seller and reviews. Counts a view."""
    product = await ProductManager().get_product(product_id)
    product['reviews'] = await ReviewManager().list_reviews(product_id)
    return product


@router.get("/{product_id}/related")
async def get_related_products(product_id: str):
    """Up to six newest products in the same category."""
    return await ProductManager().get_related(product_id)


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    request: Request,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Update a product (owner or admin)."""
    fields, uploads, image_refs, delete_images = await read_product_form(request)
    return await ProductManager().update_product(
        product_id,
        user['id'],
        fields,
        uploads=uploads,
        image_refs=image_refs,
        delete_images=delete_images,
        is_admin=user.get('role') == 'admin'
    )


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Delete a product and its images (owner or admin)."""
    await ProductManager().delete_product(
        product_id,
        user['id'],
        is_admin=user.get('role') == 'admin'
    )
    return {"message": "Product deleted successfully"}
