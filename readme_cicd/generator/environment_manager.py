"""Declarative per-environment secrets, variables, OIDC configs, and config-file templates.

`EnvironmentManager` is a pure registration/query store. Every registration
names the environments (by name or tier) it applies to, and every query is
scoped to one environment; nothing is ever visible outside its declared scope.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Literal, Mapping

logger = logging.getLogger(__name__)

EnvironmentTier = Literal["development", "staging", "production"]
DeploymentStrategy = Literal["static", "container", "serverless", "traditional"]

# Highest precedence first.
ENVIRONMENT_PRECEDENCE: tuple[str, ...] = ("production", "staging", "development")
DEPLOYMENT_STRATEGIES: tuple[str, ...] = ("static", "container", "serverless", "traditional")
OIDC_PROVIDERS: tuple[str, ...] = ("aws", "azure", "gcp")
SECRET_TYPES: tuple[str, ...] = ("api_key", "token", "certificate", "connection_string", "generic")
VARIABLE_TYPES: tuple[str, ...] = ("string", "number", "boolean", "json")
TEMPLATE_FORMATS: tuple[str, ...] = ("json", "yaml", "env", "toml", "ini")

_SECRET_KEYWORDS: tuple[str, ...] = ("password", "secret", "key", "token", "private", "credential")


def _clean_name(value: Any, *, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{what} must be a non-empty string")
    return value.strip()


def _clean_scope(environments: Iterable[str], *, what: str) -> tuple[str, ...]:
    if isinstance(environments, str):
        raise TypeError(f"{what}.environments must be a list of names, not a string")
    scope: list[str] = []
    for env in environments:
        key = _clean_name(env, what=f"{what}.environments entry")
        if key not in scope:
            scope.append(key)
    if not scope:
        raise ValueError(f"{what} must declare at least one environment")
    return tuple(scope)


@dataclass(frozen=True)
class EnvironmentConfig:
    name: str
    tier: EnvironmentTier | None = None
    approval_required: bool = False
    secrets: tuple[str, ...] = ()
    variables: Mapping[str, str] = field(default_factory=dict)
    deployment_strategy: DeploymentStrategy = "static"
    rollback_enabled: bool = False
    branch: str | None = None

    def __post_init__(self) -> None:
        name = _clean_name(self.name, what="Environment name")
        object.__setattr__(self, "name", name)
        tier = self.tier
        if tier is None:
            tier = name if name in ENVIRONMENT_PRECEDENCE else "development"
        if tier not in ENVIRONMENT_PRECEDENCE:
            raise ValueError(
                f"Environment {name} tier must be one of: {', '.join(ENVIRONMENT_PRECEDENCE)} (got {tier!r})"
            )
        object.__setattr__(self, "tier", tier)
        if self.deployment_strategy not in DEPLOYMENT_STRATEGIES:
            raise ValueError(
                f"Environment {name} deployment_strategy must be one of: "
                f"{', '.join(DEPLOYMENT_STRATEGIES)} (got {self.deployment_strategy!r})"
            )
        object.__setattr__(
            self, "secrets", tuple(dict.fromkeys(_clean_name(s, what="Secret name") for s in self.secrets))
        )
        object.__setattr__(
            self, "variables", MappingProxyType({str(k): str(v) for k, v in self.variables.items()})
        )

    @property
    def precedence(self) -> int:
        return ENVIRONMENT_PRECEDENCE.index(self.tier)  # type: ignore[arg-type]

    def matches(self, scope: Iterable[str]) -> bool:
        return any(item == self.name or item == self.tier for item in scope)


@dataclass(frozen=True)
class SecretConfig:
    name: str
    environments: tuple[str, ...]
    required: bool = True
    type: str = "generic"
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_name(self.name, what="Secret name"))
        object.__setattr__(self, "environments", _clean_scope(self.environments, what=f"Secret {self.name}"))
        if self.type not in SECRET_TYPES:
            raise ValueError(f"Secret {self.name} type must be one of: {', '.join(SECRET_TYPES)}")


@dataclass(frozen=True)
class VariableConfig:
    name: str
    environments: tuple[str, ...]
    value: str | None = None
    required: bool = False
    type: str = "string"
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _clean_name(self.name, what="Variable name"))
        object.__setattr__(
            self, "environments", _clean_scope(self.environments, what=f"Variable {self.name}")
        )
        if self.type not in VARIABLE_TYPES:
            raise ValueError(f"Variable {self.name} type must be one of: {', '.join(VARIABLE_TYPES)}")


@dataclass(frozen=True)
class OIDCConfig:
    provider: Literal["aws", "azure", "gcp"]
    role_arn: str | None = None
    region: str | None = None
    audience: str | None = None
    subscription_id: str | None = None
    workload_identity_provider: str | None = None
    service_account: str | None = None

    def __post_init__(self) -> None:
        if self.provider not in OIDC_PROVIDERS:
            raise ValueError(
                f"OIDC provider must be one of: {', '.join(OIDC_PROVIDERS)} (got {self.provider!r})"
            )

    def missing_fields(self) -> tuple[str, ...]:
        if self.provider == "aws":
            required = ("role_arn",)
        elif self.provider == "azure":
            required = ("subscription_id",)
        else:
            required = ("workload_identity_provider", "service_account")
        return tuple(name for name in required if not getattr(self, name))


@dataclass(frozen=True)
class ConfigFileTemplate:
    """A file rendered per environment; `{{NAME}}` tokens must be declared in `variables`/`secrets`."""

    filename: str
    content: str
    format: str = "env"
    variables: tuple[str, ...] = ()
    secrets: tuple[str, ...] = ()
    environment: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "filename", _clean_name(self.filename, what="Template filename"))
        if self.format not in TEMPLATE_FORMATS:
            raise ValueError(f"Template {self.filename} format must be one of: {', '.join(TEMPLATE_FORMATS)}")
        object.__setattr__(self, "variables", tuple(self.variables))
        object.__setattr__(self, "secrets", tuple(self.secrets))

    def applies_to(self, environment: EnvironmentConfig) -> bool:
        return self.environment is None or environment.matches((self.environment,))


def _secret(name: str, description: str, *, required: bool, type: str, scope: tuple[str, ...]) -> SecretConfig:
    return SecretConfig(name=name, environments=scope, required=required, type=type, description=description)


_DEPLOY_TIERS = ("staging", "production")

PRESETS: Mapping[str, tuple[SecretConfig | VariableConfig, ...]] = MappingProxyType(
    {
        "aws": (
            _secret("AWS_ACCESS_KEY_ID", "AWS access key ID", required=False, type="api_key", scope=_DEPLOY_TIERS),
            _secret("AWS_SECRET_ACCESS_KEY", "AWS secret access key", required=False, type="token", scope=_DEPLOY_TIERS),
            VariableConfig("AWS_REGION", _DEPLOY_TIERS, required=True, description="AWS region"),
        ),
        "azure": (
            _secret("AZURE_CLIENT_ID", "Azure client ID", required=False, type="api_key", scope=_DEPLOY_TIERS),
            _secret("AZURE_CLIENT_SECRET", "Azure client secret", required=False, type="token", scope=_DEPLOY_TIERS),
            _secret("AZURE_TENANT_ID", "Azure tenant ID", required=True, type="generic", scope=_DEPLOY_TIERS),
        ),
        "gcp": (
            _secret(
                "GCP_SERVICE_ACCOUNT_KEY",
                "GCP service account key JSON",
                required=False,
                type="certificate",
                scope=_DEPLOY_TIERS,
            ),
            VariableConfig("GCP_PROJECT_ID", _DEPLOY_TIERS, required=True, description="GCP project ID"),
        ),
        "docker": (
            _secret("DOCKER_USERNAME", "Docker registry username", required=True, type="generic", scope=_DEPLOY_TIERS),
            _secret("DOCKER_PASSWORD", "Docker registry password", required=True, type="token", scope=_DEPLOY_TIERS),
        ),
        "vercel": (
            _secret("VERCEL_TOKEN", "Vercel deployment token", required=True, type="token", scope=_DEPLOY_TIERS),
            _secret("VERCEL_ORG_ID", "Vercel organization ID", required=True, type="generic", scope=_DEPLOY_TIERS),
            _secret("VERCEL_PROJECT_ID", "Vercel project ID", required=True, type="generic", scope=_DEPLOY_TIERS),
        ),
        "netlify": (
            _secret("NETLIFY_AUTH_TOKEN", "Netlify authentication token", required=True, type="token", scope=_DEPLOY_TIERS),
            _secret("NETLIFY_SITE_ID", "Netlify site ID", required=True, type="generic", scope=_DEPLOY_TIERS),
        ),
    }
)


def as_environment(value: EnvironmentConfig | str) -> EnvironmentConfig:
    if isinstance(value, EnvironmentConfig):
        return value
    if isinstance(value, str):
        return EnvironmentConfig(name=value)
    raise TypeError(f"Expected EnvironmentConfig or environment name (type={type(value).__name__})")


class EnvironmentManager:
    def __init__(self, *, log: logging.Logger | None = None):
        self._logger = log or logger
        self._lock = threading.RLock()
        # (scope, name) -> config; scope is an environment name or tier
        self._secrets: dict[tuple[str, str], SecretConfig] = {}
        self._variables: dict[tuple[str, str], VariableConfig] = {}
        self._oidc: dict[str, OIDCConfig] = {}
        self._templates: dict[tuple[str, str], ConfigFileTemplate] = {}
        self._warnings: list[str] = []

    @property
    def warnings(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._warnings)

    def register_secret(self, secret: SecretConfig) -> None:
        if not isinstance(secret, SecretConfig):
            raise TypeError(f"register_secret expects SecretConfig (type={type(secret).__name__})")
        with self._lock:
            self._store_scoped(self._secrets, secret.name, secret.environments, secret, kind="Secret")

    def register_variable(self, variable: VariableConfig) -> None:
        if not isinstance(variable, VariableConfig):
            raise TypeError(f"register_variable expects VariableConfig (type={type(variable).__name__})")
        with self._lock:
            self._store_scoped(self._variables, variable.name, variable.environments, variable, kind="Variable")

    def register_oidc(self, environment: str, config: OIDCConfig) -> None:
        scope = _clean_name(environment, what="OIDC environment")
        if not isinstance(config, OIDCConfig):
            raise TypeError(f"register_oidc expects OIDCConfig (type={type(config).__name__})")
        with self._lock:
            if scope in self._oidc:
                self._warn(f"OIDC configuration for '{scope}' re-registered; previous definition replaced")
            self._oidc[scope] = config

    def register_config_template(self, template: ConfigFileTemplate) -> None:
        if not isinstance(template, ConfigFileTemplate):
            raise TypeError(
                f"register_config_template expects ConfigFileTemplate (type={type(template).__name__})"
            )
        key = (template.environment or "*", template.filename)
        with self._lock:
            if key in self._templates:
                self._warn(
                    f"Config template '{template.filename}' re-registered for "
                    f"'{template.environment or 'all environments'}'; previous definition replaced"
                )
            self._templates[key] = template

    def register_preset(self, name: str) -> None:
        """Register the common secrets/variables for a deployment platform."""

        key = (name or "").strip().lower()
        if key not in PRESETS:
            raise ValueError(f"Unknown environment preset: {name!r} (known: {', '.join(PRESETS)})")
        for entry in PRESETS[key]:
            if isinstance(entry, SecretConfig):
                self.register_secret(entry)
            else:
                self.register_variable(entry)

    def secrets_for(self, environment: EnvironmentConfig | str) -> tuple[SecretConfig, ...]:
        with self._lock:
            return self._scoped(self._secrets, as_environment(environment))

    def variables_for(self, environment: EnvironmentConfig | str) -> tuple[VariableConfig, ...]:
        with self._lock:
            return self._scoped(self._variables, as_environment(environment))

    def oidc_for(self, environment: EnvironmentConfig | str) -> OIDCConfig | None:
        env = as_environment(environment)
        with self._lock:
            return self._oidc.get(env.name) or self._oidc.get(env.tier or "")

    def templates_for(self, environment: EnvironmentConfig | str) -> tuple[ConfigFileTemplate, ...]:
        env = as_environment(environment)
        with self._lock:
            # Environment-specific templates win over the "all environments" one of the same filename.
            chosen: dict[str, ConfigFileTemplate] = {}
            for (scope, filename), template in self._templates.items():
                if scope == "*" and filename not in chosen:
                    chosen[filename] = template
            for (scope, filename), template in self._templates.items():
                if scope != "*" and template.applies_to(env):
                    chosen[filename] = template
            return tuple(chosen.values())

    def get_secrets(self) -> tuple[SecretConfig, ...]:
        with self._lock:
            return tuple(dict.fromkeys(self._secrets.values()))

    def get_variables(self) -> tuple[VariableConfig, ...]:
        with self._lock:
            return tuple(dict.fromkeys(self._variables.values()))

    def get_oidc_configs(self) -> Mapping[str, OIDCConfig]:
        with self._lock:
            return MappingProxyType(dict(self._oidc))

    def get_config_templates(self) -> tuple[ConfigFileTemplate, ...]:
        with self._lock:
            return tuple(self._templates.values())

    def validate_configuration(self, environments: Iterable[EnvironmentConfig | str]) -> list[str]:
        """Report completeness and hygiene problems for the given environment set."""

        envs = [as_environment(env) for env in environments]
        issues: list[str] = []
        for secret in self.get_secrets():
            if secret.required and not any(env.matches(secret.environments) for env in envs):
                issues.append(f"Required secret '{secret.name}' is not configured for any environment")
        for variable in self.get_variables():
            if variable.required and not any(env.matches(variable.environments) for env in envs):
                issues.append(f"Required variable '{variable.name}' is not configured for any environment")
            if _looks_secret(variable.name, variable.value):
                issues.append(
                    f"Variable '{variable.name}' appears to contain sensitive data and should be moved to secrets"
                )
        for env in envs:
            for name, value in env.variables.items():
                if _looks_secret(name, value):
                    issues.append(
                        f"Variable '{name}' in environment '{env.name}' appears to contain sensitive data "
                        "and should be moved to secrets"
                    )
        for scope, config in self.get_oidc_configs().items():
            missing = config.missing_fields()
            if missing:
                issues.append(
                    f"{config.provider.upper()} OIDC configuration for '{scope}' is missing {', '.join(missing)}"
                )
        return issues

    def clear(self) -> None:
        with self._lock:
            self._secrets.clear()
            self._variables.clear()
            self._oidc.clear()
            self._templates.clear()
            self._warnings.clear()

    def _store_scoped(
        self,
        store: dict[tuple[str, str], Any],
        name: str,
        scope: tuple[str, ...],
        value: Any,
        *,
        kind: str,
    ) -> None:
        replaced = [env for env in scope if (env, name) in store]
        for env in scope:
            store[(env, name)] = value
        if replaced:
            self._warn(
                f"{kind} '{name}' re-registered for {', '.join(replaced)}; previous definition replaced"
            )

    def _scoped(self, store: dict[tuple[str, str], Any], env: EnvironmentConfig) -> tuple[Any, ...]:
        # Name-scoped entries take priority over tier-scoped ones with the same name.
        found: dict[str, Any] = {}
        for (scope, name), value in store.items():
            if scope == env.tier and scope != env.name:
                found.setdefault(name, value)
        for (scope, name), value in store.items():
            if scope == env.name:
                found[name] = value
        return tuple(found.values())

    def _warn(self, message: str) -> None:
        self._warnings.append(message)
        self._logger.warning("%s", message)


def _looks_secret(name: str, value: str | None) -> bool:
    lowered = name.lower()
    if any(keyword in lowered for keyword in _SECRET_KEYWORDS):
        return True
    return bool(value) and len(value) > 20 and "${{" not in value  # type: ignore[arg-type]
