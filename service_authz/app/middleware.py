"""
FastAPI authorization layer for admin terminal routes.

Routes declare what they need through dependencies:

    @app.get("/cases/{case_id}", dependencies=[Depends(require_policy("cases", "read"))])

The authenticated actor is read from ``request.state.user_info``, which the
identity layer populates ahead of these dependencies.
"""

from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from shared.config import ServiceConfig, get_config
from shared.errors import AccessLayerException, AuthenticationError, AuthorizationError
from shared.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
    set_user_context,
)
from shared.metrics import get_metrics_collector

from .policy.clearance import meets_clearance
from .policy.evaluator import get_evaluator
from .policy.hierarchy import normalize_roles, role_name
from .policy.models import Actor, ClearanceLevel, PolicyResult, Role
from .policy.permissions import is_restricted_viewer
from .policy.tables import load_configured_policy
from .redaction import redact

SERVICE_NAME = "authz"

logger = get_logger("authz.middleware")
metrics = get_metrics_collector(SERVICE_NAME)

CONTEXT_BODY_FIELDS = ("org_id", "branch_id", "region")


def get_authz_config(request: Request) -> ServiceConfig:
    config = getattr(request.app.state, "authz_config", None)
    if config is None:
        config = get_config(SERVICE_NAME)
        request.app.state.authz_config = config
    return config


def get_current_actor(request: Request) -> Actor:
    """Resolve the authenticated actor placed on the request by the identity layer."""
    user_info = getattr(request.state, "user_info", None)
    if not user_info:
        raise AuthenticationError("User not authenticated")

    if isinstance(user_info, Actor):
        actor = user_info
    else:
        actor_id = user_info.get("user_id") or user_info.get("id")
        if not actor_id:
            raise AuthenticationError("User not authenticated")
        roles = user_info.get("roles") or user_info.get("role")
        try:
            actor = Actor(id=str(actor_id), roles=list(normalize_roles(roles)), attributes=user_info.get("attributes") or {})
        except (TypeError, ValidationError):
            raise AuthenticationError("Malformed actor record")

    set_user_context(actor.id, actor.attributes.get("org_id"))
    return actor


async def build_resource_context(request: Request) -> Dict[str, Any]:
    """Assemble the resource context from path, query and JSON body fields."""
    context: Dict[str, Any] = {}
    context.update(request.path_params)
    context.update(request.query_params)

    if request.method in ("POST", "PUT", "PATCH") and \
            request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for field in CONTEXT_BODY_FIELDS:
                if body.get(field) is not None:
                    context[field] = body[field]

    return context


def denial_message(result: PolicyResult, config: ServiceConfig) -> str:
    if not config.expose_denial_details:
        return "Access denied"
    required = ", ".join(result.required_attributes or ()) or "N/A"
    return f"Access denied: {result.reason}. Required: {required}"


def route_label(request: Request) -> str:
    """Metric label for the matched route template, never the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def require_role(role: Any) -> Callable:
    """Require ``role``, directly or through the hierarchy."""
    required = role_name(role)

    def dependency(request: Request, actor: Actor = Depends(get_current_actor)) -> Actor:
        allowed = get_evaluator().has_role(actor.roles, required)
        metrics.record_authz_decision(allowed, route_label(request), "role")
        if not allowed:
            logger.warning(
                "RBAC role check failed",
                user_id=actor.id,
                user_roles=actor.roles,
                required_role=required,
                path=request.url.path,
            )
            raise AuthorizationError(f"Access denied: requires {required} role")

        logger.info("RBAC role check passed", user_id=actor.id, role=required, path=request.url.path)
        return actor

    return dependency


def require_permission(resource: str, action: str) -> Callable:
    """Coarse grant check; use ``require_policy`` for an authoritative decision."""

    def dependency(request: Request, actor: Actor = Depends(get_current_actor)) -> Actor:
        allowed = get_evaluator().has_permission(actor.roles, resource, action)
        metrics.record_authz_decision(allowed, resource, "permission")
        if not allowed:
            logger.warning(
                "RBAC permission check failed",
                user_id=actor.id,
                user_roles=actor.roles,
                resource=resource,
                action=action,
                path=request.url.path,
            )
            raise AuthorizationError(f"Access denied: requires {resource}:{action} permission")

        logger.info(
            "RBAC permission check passed",
            user_id=actor.id,
            resource=resource,
            action=action,
            path=request.url.path,
        )
        return actor

    return dependency


def require_policy(resource: str, action: str) -> Callable:
    """Full deny-by-default policy evaluation for ``resource:action``."""

    async def dependency(request: Request, actor: Actor = Depends(get_current_actor)) -> PolicyResult:
        config = get_authz_config(request)
        resource_context = await build_resource_context(request)

        with metrics.time_operation("authz_evaluation_duration_seconds", check="policy"):
            result = get_evaluator().evaluate(actor.roles, actor.attributes, resource, action, resource_context)
        metrics.record_authz_decision(result.allowed, resource, "policy")

        if not result.allowed:
            logger.warning(
                "RBAC policy evaluation denied",
                user_id=actor.id,
                user_roles=actor.roles,
                resource=resource,
                action=action,
                reason=result.reason,
                required_attributes=list(result.required_attributes or ()),
                deny_by_default=result.deny_by_default,
                path=request.url.path,
            )
            details = result.to_dict() if config.expose_denial_details else {}
            raise AuthorizationError(denial_message(result, config), details=details)

        request.state.policy_result = result
        logger.info(
            "RBAC policy evaluation allowed",
            user_id=actor.id,
            resource=resource,
            action=action,
            reason=result.reason,
            path=request.url.path,
        )
        return result

    return dependency


def require_clearance(level: Any) -> Callable:
    """Require at least ``level`` on the clearance ladder."""
    required = ClearanceLevel.parse(level)

    def dependency(request: Request, actor: Actor = Depends(get_current_actor)) -> Actor:
        actual = actor.attributes.get("clearance_level") or ClearanceLevel.L1.value
        allowed = meets_clearance(actual, required)
        metrics.record_authz_decision(allowed, route_label(request), "clearance")
        if not allowed:
            logger.warning(
                "RBAC clearance check failed",
                user_id=actor.id,
                user_clearance=actual,
                required_clearance=required.value,
                path=request.url.path,
            )
            raise AuthorizationError(f"Access denied: requires {required.value} clearance level")

        logger.info("RBAC clearance check passed", user_id=actor.id, clearance_level=required.value)
        return actor

    return dependency


async def require_org_scope(request: Request, actor: Actor = Depends(get_current_actor)) -> Actor:
    """Confine the actor to their own organization unless they hold the top role."""
    user_org_id = actor.attributes.get("org_id")
    if not user_org_id:
        raise AuthorizationError("User organization not specified")

    resource_org_id = (await build_resource_context(request)).get("org_id")
    if resource_org_id is not None and str(resource_org_id) != str(user_org_id):
        if not get_evaluator().has_role(actor.roles, Role.SUPER_ADMIN):
            metrics.record_authz_decision(False, route_label(request), "org_scope")
            logger.warning(
                "RBAC organization scope check failed",
                user_id=actor.id,
                user_org_id=user_org_id,
                resource_org_id=resource_org_id,
                path=request.url.path,
            )
            raise AuthorizationError("Access denied: organization scope restriction")

    metrics.record_authz_decision(True, route_label(request), "org_scope")
    return actor


def get_redactor(actor: Actor = Depends(get_current_actor)) -> Callable[[Any], Any]:
    """Return a function that redacts response payloads for this actor."""
    restricted = is_restricted_viewer(actor.roles)

    def redactor(payload: Any) -> Any:
        if restricted:
            metrics.record_redaction()
        return redact(payload, actor.roles)

    return redactor


def install_exception_handlers(app: FastAPI) -> None:
    """Translate access layer errors into JSON error responses."""

    @app.exception_handler(AccessLayerException)
    async def access_layer_exception_handler(request: Request, exc: AccessLayerException):
        metrics.record_error(exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(get_request_id()).model_dump()
        )


def configure_authorization(app: FastAPI, config: Optional[ServiceConfig] = None) -> ServiceConfig:
    """Wire logging, policy tables and error handling into ``app``."""
    config = config or get_config(SERVICE_NAME)
    configure_logging(SERVICE_NAME, config.log_level, json_logs=config.env != "local")
    load_configured_policy(config)

    app.state.authz_config = config
    install_exception_handlers(app)

    @app.middleware("http")
    async def correlation_context(request: Request, call_next):
        set_request_id(request.headers.get("X-Request-ID"))
        try:
            return await call_next(request)
        finally:
            clear_context()

    logger.info(
        "Authorization configured",
        env=config.env,
        policy_file=config.policy_file,
        expose_denial_details=config.expose_denial_details,
    )
    return config
