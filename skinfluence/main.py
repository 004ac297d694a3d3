import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from skinfluence.config import Settings, get_settings
from skinfluence.errors import (
    CatalogError,
    ProfileValidationError,
    RoutineNotFoundError,
    UserNotFoundError,
)
from skinfluence.formatting import format_routine_detailed, format_routine_short
from skinfluence.repository import UserRepository
from skinfluence.schemas import (
    BudgetTier,
    OverrideRequest,
    Preferences,
    Product,
    RetailLink,
    Routine,
    RoutineRequest,
    SafetyFlag,
    SafetyToggles,
    SkinProfile,
    StepType,
    UserConsents,
    UserRecord,
)
from skinfluence.services.catalog import CatalogService
from skinfluence.services.routine_engine import RoutineEngine

# Set up logging
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

router = APIRouter()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            app.state.catalog.load_catalog()
        except CatalogError as e:
            # Stay up with an empty snapshot; routine calls answer 503
            logger.error(f"Catalog failed to load at startup: {e}")
        yield

    app = FastAPI(title=settings.service_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    catalog = CatalogService(settings)
    app.state.settings = settings
    app.state.catalog = catalog
    app.state.engine = RoutineEngine(catalog, settings)
    app.state.users = UserRepository()

    app.include_router(router)
    return app


# ── Dependencies ────────────────────────────────────────────────────────────


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_engine(request: Request) -> RoutineEngine:
    return request.app.state.engine


def get_users(request: Request) -> UserRepository:
    return request.app.state.users


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _preferences_from_query(
    budget_tier: BudgetTier = Query(BudgetTier.BALANCED, alias="budgetTier"),
    flags: list[SafetyFlag] = Query([]),
) -> Preferences:
    safety = SafetyToggles(
        pregnancy_safe=SafetyFlag.PREGNANCY_SAFE in flags,
        fragrance_free=SafetyFlag.FRAGRANCE_FREE in flags,
        essential_oil_free=SafetyFlag.EO_FREE in flags,
        alcohol_denat_free=SafetyFlag.ALCOHOL_DENAT_FREE in flags,
    )
    return Preferences(budget_tier=budget_tier, safety=safety)


def _generate(engine: RoutineEngine, profile: SkinProfile, preferences: Preferences) -> Routine:
    try:
        return engine.generate(profile, preferences)
    except CatalogError as e:
        logger.error(f"Routine generation failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))


# ── Routes ──────────────────────────────────────────────────────────────────


@router.get("/")
def health_check(
    catalog: CatalogService = Depends(get_catalog),
    settings: Settings = Depends(get_app_settings),
):
    return {
        "status": "healthy" if catalog.is_loaded else "degraded",
        "service": settings.service_name,
        "catalogVersion": catalog.version,
        "products": len(catalog.products),
    }


@router.post("/routine", response_model=Routine)
def generate_routine(
    body: RoutineRequest,
    engine: RoutineEngine = Depends(get_engine),
):
    return _generate(engine, body.profile, body.preferences)


@router.get("/products", response_model=list[Product])
def list_products(
    step_type: Optional[StepType] = Query(None, alias="stepType"),
    budget_tier: Optional[BudgetTier] = Query(None, alias="budgetTier"),
    flags: list[SafetyFlag] = Query([]),
    q: str = "",
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.filtered(
        step_type=step_type,
        budget_tier=budget_tier,
        required_flags=frozenset(flags),
        search_text=q,
    )


def _require_product(catalog: CatalogService, product_id: str) -> Product:
    product = catalog.by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    return product


@router.get("/products/{product_id}", response_model=Product)
def get_product(product_id: str, catalog: CatalogService = Depends(get_catalog)):
    return _require_product(catalog, product_id)


@router.get("/products/{product_id}/alternatives", response_model=list[Product])
def get_alternatives(
    product_id: str,
    preferences: Preferences = Depends(_preferences_from_query),
    catalog: CatalogService = Depends(get_catalog),
    settings: Settings = Depends(get_app_settings),
):
    _require_product(catalog, product_id)
    return catalog.alternatives(product_id, preferences, limit=settings.max_alternatives)


@router.get("/products/{product_id}/links", response_model=list[RetailLink])
def get_retail_links(
    product_id: str,
    retailer: list[str] = Query([]),
    catalog: CatalogService = Depends(get_catalog),
):
    _require_product(catalog, product_id)
    retailers = retailer or list(Preferences().retailer_order)
    return catalog.retail_links(product_id, retailers)


# ── Users ───────────────────────────────────────────────────────────────────


@router.put("/users/{user_id}/profile", response_model=UserRecord)
def put_profile(user_id: str, profile: SkinProfile, users: UserRepository = Depends(get_users)):
    return users.update_profile(user_id, profile)


@router.put("/users/{user_id}/preferences", response_model=UserRecord)
def put_preferences(
    user_id: str,
    preferences: Preferences,
    users: UserRepository = Depends(get_users),
):
    try:
        return users.update_preferences(user_id, preferences)
    except ProfileValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.put("/users/{user_id}/consents", response_model=UserRecord)
def put_consents(user_id: str, consents: UserConsents, users: UserRepository = Depends(get_users)):
    return users.update_consents(user_id, consents)


@router.post("/users/{user_id}/routine", response_model=Routine)
def generate_user_routine(
    user_id: str,
    users: UserRepository = Depends(get_users),
    engine: RoutineEngine = Depends(get_engine),
):
    record = users.get(user_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
    if record.profile is None:
        raise HTTPException(status_code=409, detail="Skin profile is required before generating a routine")

    routine = _generate(engine, record.profile, record.preferences)
    users.save_routine(user_id, routine)
    logger.info(f"Stored routine | User: {user_id} | Steps: {len(routine.am)} AM, {len(routine.pm)} PM")
    return routine


def _require_user_routine(users: UserRepository, user_id: str) -> Routine:
    record = users.get(user_id)
    if record is None or record.routine is None:
        raise HTTPException(status_code=404, detail=f"No routine for user: {user_id}")
    return record.routine


@router.get("/users/{user_id}/routine", response_model=Routine)
def get_user_routine(user_id: str, users: UserRepository = Depends(get_users)):
    return _require_user_routine(users, user_id)


@router.get("/users/{user_id}/routine/summary", response_class=PlainTextResponse)
def get_routine_summary(
    user_id: str,
    detailed: bool = False,
    users: UserRepository = Depends(get_users),
    catalog: CatalogService = Depends(get_catalog),
):
    routine = _require_user_routine(users, user_id)
    if detailed:
        return format_routine_detailed(routine, catalog)
    return format_routine_short(routine, catalog)


@router.put("/users/{user_id}/routine/overrides/{step_type}", response_model=Routine)
def put_override(
    user_id: str,
    step_type: StepType,
    body: OverrideRequest,
    users: UserRepository = Depends(get_users),
    catalog: CatalogService = Depends(get_catalog),
):
    _require_product(catalog, body.product_id)
    try:
        return users.apply_override(user_id, step_type, body.product_id)
    except (UserNotFoundError, RoutineNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/users/{user_id}/routine/overrides/{step_type}", response_model=Routine)
def delete_override(
    user_id: str,
    step_type: StepType,
    users: UserRepository = Depends(get_users),
):
    try:
        return users.remove_override(user_id, step_type)
    except (UserNotFoundError, RoutineNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))


app = create_app()
