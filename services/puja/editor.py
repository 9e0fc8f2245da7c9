"""
services/puja/editor.py
Multi-tab puja editor: tab catalogue, per-tab validation, draft
transitions and conversion to and from the backend's puja format.

Validation rules live in the *Tab schemas; this module only maps their
errors to field paths and decides which tab is active.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Type

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel, to_snake

from shared.schemas.schemas import (
    BasicInfoTab,
    BenefitsTab,
    DetailsTab,
    FaqsTab,
    PackagesTab,
    PricingPackageItem,
    PujaDraftState,
    PujaFormData,
    TabStatus,
    TabViolation,
    TestimonialsTab,
    WhoShouldBookTab,
    WhyYouShouldItem,
    WhyYouShouldTab,
)


class Tab(NamedTuple):
    label: str
    schema: Type[BaseModel]
    required: bool


TABS: List[Tab] = [
    Tab("Basic Info", BasicInfoTab, True),
    Tab("Details", DetailsTab, True),
    Tab("Benefits", BenefitsTab, True),
    Tab("Who Should Book", WhoShouldBookTab, True),
    Tab("Why Should You Perform", WhyYouShouldTab, True),
    Tab("Packages", PackagesTab, True),
    Tab("Testimonials", TestimonialsTab, False),
    Tab("FAQs", FaqsTab, False),
]

REQUIRED_TABS = [i for i, tab in enumerate(TABS) if tab.required]
DEFAULT_REASON_ICON = "Target"


# ── Validation ────────────────────────────────────────────────

def _error_message(error: dict) -> str:
    if error["type"] == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    return error["msg"]


def validate_tab(index: int, data: PujaFormData) -> Dict[str, str]:
    """Field path -> first error message for one tab. Empty when valid."""
    schema = TABS[index].schema
    payload = data.model_dump(include=set(schema.model_fields))
    try:
        schema.model_validate(payload)
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for error in exc.errors():
            path = ".".join(str(part) for part in error["loc"])
            errors.setdefault(path, _error_message(error))
        return errors
    return {}


def validate_required(data: PujaFormData) -> List[TabViolation]:
    """Every violation across the required tabs, in tab order."""
    violations = []
    for index in REQUIRED_TABS:
        for field, message in validate_tab(index, data).items():
            violations.append(TabViolation(tab=index, label=TABS[index].label, field=field, message=message))
    return violations


def tab_statuses(data: PujaFormData) -> List[TabStatus]:
    return [
        TabStatus(index=i, label=tab.label, required=tab.required, valid=not validate_tab(i, data))
        for i, tab in enumerate(TABS)
    ]


# ── Draft Transitions ─────────────────────────────────────────

def blank_form() -> PujaFormData:
    return PujaFormData(
        why_you_should=[WhyYouShouldItem(icon=DEFAULT_REASON_ICON)],
        pricing_packages=[PricingPackageItem(id=1)],
    )


def new_draft(data: Optional[PujaFormData] = None, puja_id: Optional[str] = None) -> PujaDraftState:
    return refresh(PujaDraftState(
        draft_id=uuid.uuid4().hex,
        puja_id=puja_id,
        data=data or blank_form(),
    ))


def refresh(state: PujaDraftState) -> PujaDraftState:
    state.active_label = TABS[state.active_tab].label
    state.tabs = tab_statuses(state.data)
    state.updated_at = datetime.now(timezone.utc)
    return state


def update_tab(state: PujaDraftState, tab: int, changes: Dict[str, Any]) -> PujaDraftState:
    """Merge partial form data. Fields outside the tab being edited are rejected."""
    allowed = set(TABS[tab].schema.model_fields)
    if tab == 0:
        allowed |= {"duration", "gallery_images"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Fields not on tab {TABS[tab].label}: {sorted(unknown)}")
    merged = {**state.data.model_dump(), **changes}
    state.data = PujaFormData.model_validate(merged)
    state.active_tab = tab
    if state.field_errors:
        state.field_errors = validate_tab(tab, state.data)
    return refresh(state)


def go_next(state: PujaDraftState) -> PujaDraftState:
    """Advance only when the current tab validates; otherwise record its errors."""
    errors = validate_tab(state.active_tab, state.data)
    if errors:
        state.field_errors = errors
        return refresh(state)
    state.field_errors = {}
    state.active_tab = min(len(TABS) - 1, state.active_tab + 1)
    return refresh(state)


def go_previous(state: PujaDraftState) -> PujaDraftState:
    state.field_errors = {}
    state.active_tab = max(0, state.active_tab - 1)
    return refresh(state)


def set_popular(state: PujaDraftState, package_id: int) -> PujaDraftState:
    """Exactly one package is marked popular."""
    if not any(p.id == package_id for p in state.data.pricing_packages):
        raise KeyError(package_id)
    for package in state.data.pricing_packages:
        package.is_popular = package.id == package_id
    return refresh(state)


# ── Backend Conversion ────────────────────────────────────────

def _snake(value: Any) -> Any:
    if isinstance(value, dict):
        return {to_snake(k): _snake(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_snake(v) for v in value]
    return value


def _entries(value: Any) -> List[str]:
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()] or [""]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v.strip()] or [""]
    return [""]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def form_from_backend(puja: Dict[str, Any]) -> PujaFormData:
    """Editor form pre-filled from an existing puja record."""
    raw = _snake(puja)
    category = raw.get("category_id")
    if isinstance(category, dict):
        category = category.get("_id")

    reasons = [
        WhyYouShouldItem(
            title=_text(r.get("title")),
            description=_text(r.get("description")),
            icon=r.get("icon") or DEFAULT_REASON_ICON,
        )
        for r in raw.get("why_you_should") or []
    ] or [WhyYouShouldItem(icon=DEFAULT_REASON_ICON)]

    packages = [
        {
            "id": i + 1,
            "title": _text(p.get("title")),
            "price": p.get("price") or 0,
            "original_price": p.get("original_price"),
            "discount": p.get("discount"),
            "is_popular": bool(p.get("is_popular")),
            "features": p.get("features") or [""],
            "duration": p.get("duration"),
            "validity": p.get("validity"),
        }
        for i, p in enumerate(raw.get("pricing_packages") or [])
    ] or [{"id": 1}]

    testimonials = [
        {
            "id": i + 1,
            "highlight": _text(t.get("highlight")),
            "quote": _text(t.get("quote")),
            "name": _text(t.get("name")),
            "location": _text(t.get("location")),
        }
        for i, t in enumerate(raw.get("testimonials") or [])
    ]
    faqs = [
        {"id": i + 1, "question": _text(f.get("question")), "answer": _text(f.get("answer"))}
        for i, f in enumerate(raw.get("faqs") or [])
    ]

    return PujaFormData.model_validate({
        "category_id": _text(category),
        "puja_name": _text(raw.get("title") or raw.get("puja_name")),
        "price": _text(raw.get("price")),
        "admin_commission": _text(raw.get("admin_commission")),
        "overview": _text(raw.get("overview")),
        "duration": _text(raw.get("duration")),
        "main_image": _text(raw.get("main_image")),
        "gallery_images": raw.get("gallery_images") or [],
        "puja_details": _text(raw.get("puja_details")),
        "why_perform": _text(raw.get("why_perform")),
        "benefits": _entries(raw.get("benefits")),
        "who_should_book": _entries(raw.get("who_should_book")),
        "why_you_should": reasons,
        "pricing_packages": packages,
        "testimonials": testimonials,
        "faqs": faqs,
    })


def _camel_items(items: List[BaseModel]) -> List[Dict[str, Any]]:
    return [{to_camel(k): v for k, v in item.model_dump().items()} for item in items]


def backend_fields(data: PujaFormData) -> Dict[str, Any]:
    """Multipart form fields for create_puja / update-puja."""
    return {
        "categoryId": data.category_id,
        "pujaName": data.puja_name,
        "price": data.price,
        "adminCommission": data.admin_commission,
        "overview": data.overview,
        "whyPerform": data.why_perform,
        "pujaDetails": data.puja_details,
        "duration": data.duration,
        "mainImage": data.main_image or None,
        "galleryImages": data.gallery_images,
        "benefits": json.dumps([b.strip() for b in data.benefits if b.strip()]),
        "whoShouldBook": json.dumps([w.strip() for w in data.who_should_book if w.strip()]),
        "whyYouShould": json.dumps([
            {"title": r.title, "description": r.description, "icon": r.icon}
            for r in data.why_you_should
        ]),
        "pricingPackages": json.dumps(_camel_items(data.pricing_packages)),
        "testimonials": json.dumps(_camel_items(data.testimonials)),
        "faqs": json.dumps(_camel_items(data.faqs)),
    }
