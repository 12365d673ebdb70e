# File: sheetforge/auth.py
"""
SheetForge - Auth Subsystem Emitter
===================================
The reserved auth entity (``authusers`` by default) does not get CRUD
routes or form/list descriptors. When its fields contain exactly one
``login:identity`` field and exactly one ``password`` field it instead gets:

* a login operation (``LoginSpec``) bound to ``POST <api_prefix>/auth/login``,
* a login form descriptor with a client-side CAPTCHA,
* a route-guard descriptor that redirects to ``/login`` without a token.

Otherwise auth emission is skipped with a warning; the entity still receives
no CRUD surface.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sheetforge.models import EntitySchema, FieldType, GenerationConfig

logger: logging.Logger = logging.getLogger("sheetforge.auth")

CAPTCHA_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CAPTCHA_LENGTH: int = 6
INVALID_CREDENTIALS: str = "Invalid credentials"
MISSING_CREDENTIALS: str = "Please provide all required fields."
LOGIN_SERVER_ERROR: str = "Server error during login"
LOGIN_ROUTE: str = "/login"

_AUTH_CONFIG: ConfigDict = ConfigDict(frozen=True, extra="forbid")


def is_auth_entity(name: str, reserved: str = "authusers") -> bool:
    """True when *name* is the reserved auth entity (trimmed, case-insensitive)."""
    return name.strip().lower() == reserved.strip().lower()


@dataclass(frozen=True, slots=True)
class AuthActivation:
    """Outcome of the activation check on the auth entity."""

    identity_field: Optional[str]
    password_field: Optional[str]
    problem: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.problem is None


def resolve_auth_activation(entity: EntitySchema) -> AuthActivation:
    """Exactly one identity-hint field and exactly one password-type field."""
    identities = [f.field_name for f in entity.fields if f.is_identity]
    passwords = [f.field_name for f in entity.fields if f.is_password]
    identity = identities[0] if len(identities) == 1 else None
    password = passwords[0] if len(passwords) == 1 else None

    problems: List[str] = []
    if len(identities) != 1:
        problems.append(
            f"expected exactly one 'login:identity' field, found {len(identities)}"
        )
    if len(passwords) != 1:
        problems.append(f"expected exactly one 'password' field, found {len(passwords)}")

    return AuthActivation(
        identity_field=identity,
        password_field=password,
        problem="; ".join(problems) or None,
    )


# ---------------------------------------------------------------------------
# Login operation
# ---------------------------------------------------------------------------


class LoginSpec(BaseModel):
    """The emitted login operation."""

    model_config = _AUTH_CONFIG

    entity_name: str
    type_name: str
    module: str
    identity_field: str
    password_field: str
    path: str = Field(..., description="Fixed login route.")
    token_expiry_seconds: int = 86400
    invalid_message: str = INVALID_CREDENTIALS
    missing_message: str = MISSING_CREDENTIALS
    server_error_message: str = LOGIN_SERVER_ERROR


def emit_login_spec(
    entity: EntitySchema, activation: AuthActivation, config: GenerationConfig
) -> LoginSpec:
    if not activation.active:
        raise ValueError(f"Auth is not active for '{entity.name}': {activation.problem}")
    return LoginSpec(
        entity_name=entity.name,
        type_name=entity.type_name,
        module=entity.module,
        identity_field=activation.identity_field,
        password_field=activation.password_field,
        path=config.login_path,
        token_expiry_seconds=config.token_expiry_seconds,
    )


# ---------------------------------------------------------------------------
# Client-side descriptors
# ---------------------------------------------------------------------------


class CaptchaSpec(BaseModel):
    model_config = _AUTH_CONFIG

    length: int = CAPTCHA_LENGTH
    alphabet: str = CAPTCHA_ALPHABET
    case_insensitive: bool = True
    client_only: bool = True
    required_before_submit: bool = True
    regenerate_on_failure: bool = True


class CredentialInput(BaseModel):
    model_config = _AUTH_CONFIG

    name: str
    label: str
    input_type: str
    icon: str
    required: bool = True


class LoginFormDescriptor(BaseModel):
    """Client-side credential form."""

    model_config = _AUTH_CONFIG

    component: str = "Login"
    route: str = LOGIN_ROUTE
    endpoint: str
    identity: CredentialInput
    password: CredentialInput
    captcha: CaptchaSpec = Field(default_factory=CaptchaSpec)
    token_field: str = "token"
    token_storage_key: str
    redirect_to: str = "/"
    error_message: str = INVALID_CREDENTIALS


class RouteGuardDescriptor(BaseModel):
    """Redirects to the login surface when no token is stored locally."""

    model_config = _AUTH_CONFIG

    component: str = "ProtectedRoute"
    token_storage_key: str
    redirect_to: str = LOGIN_ROUTE
    replace: bool = True
    public_routes: List[str] = Field(default_factory=lambda: [LOGIN_ROUTE])
    protected_routes: List[str] = Field(default_factory=list)


def emit_login_form(
    entity: EntitySchema, login: LoginSpec, config: GenerationConfig
) -> LoginFormDescriptor:
    identity = entity.get_field(login.identity_field)
    password = entity.get_field(login.password_field)
    is_email = identity is not None and identity.type == FieldType.EMAIL.value
    return LoginFormDescriptor(
        endpoint=login.path,
        identity=CredentialInput(
            name=login.identity_field,
            label=identity.label if identity else login.identity_field,
            input_type="email" if is_email else "text",
            icon="mail" if is_email else "phone",
        ),
        password=CredentialInput(
            name=login.password_field,
            label=password.label if password else login.password_field,
            input_type="password",
            icon="lock",
        ),
        token_storage_key=config.token_storage_key,
    )


def emit_route_guard(
    config: GenerationConfig, protected_routes: Optional[List[str]] = None
) -> RouteGuardDescriptor:
    return RouteGuardDescriptor(
        token_storage_key=config.token_storage_key,
        protected_routes=list(protected_routes or ["/*"]),
    )
