"""Environment-aware workflow steps: detection, secret validation, OIDC auth, env files, deployment."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping

from readme_cicd.generator.environment_manager import (
    DEPLOYMENT_STRATEGIES,
    ENVIRONMENT_PRECEDENCE,
    ConfigFileTemplate,
    EnvironmentConfig,
    EnvironmentManager,
    OIDCConfig,
    as_environment,
)
from readme_cicd.generator.workflow_model import WorkflowStep

logger = logging.getLogger(__name__)

DETECT_STEP_ID = "detect-env"
DEFAULT_BRANCHES: Mapping[str, str] = {"production": "main", "staging": "staging"}
FALLBACK_ENVIRONMENT = "development"

_TOKEN_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


@dataclass(frozen=True)
class EnvironmentStepOptions:
    validate_secrets: bool = True
    include_oidc: bool = True
    generate_env_files: bool = True
    include_config_generation: bool = True
    dispatch_input: str = "environment"

    @classmethod
    def from_value(cls, value: "EnvironmentStepOptions | Mapping[str, Any] | None") -> "EnvironmentStepOptions":
        if value is None:
            return cls()
        if isinstance(value, EnvironmentStepOptions):
            return value
        if not isinstance(value, Mapping):
            raise TypeError(f"Environment step options must be a mapping (type={type(value).__name__})")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(value) - known)
        if unknown:
            raise ValueError(f"Unknown environment step options: {', '.join(unknown)}")
        return cls(**dict(value))


def environment_guard(environment: str) -> str:
    return f"steps.{DETECT_STEP_ID}.outputs.environment == '{environment}'"


def secret_ref(name: str) -> str:
    return "${{ secrets.%s }}" % name


def variable_ref(name: str, default: str | None = None) -> str:
    """`vars.NAME`, falling back to `default` (or to `env.NAME` when there is none).

    A default that is itself a `${{ ... }}` expression is inlined as-is;
    anything else becomes a quoted string literal.
    """

    if not default:
        fallback = f"env.{name}"
    elif default.startswith("${{") and default.endswith("}}"):
        fallback = default[3:-2].strip()
    else:
        fallback = "'%s'" % default.replace("'", "''")
    return "${{ vars.%s || %s }}" % (name, fallback)


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "env"


def _by_precedence(environments: Iterable[EnvironmentConfig]) -> list[EnvironmentConfig]:
    return sorted(environments, key=lambda env: env.precedence)


class EnvironmentStepGenerator:
    def __init__(self, manager: EnvironmentManager, *, log: logging.Logger | None = None):
        self._manager = manager
        self._logger = log or logger
        self._warnings: list[str] = []

    @property
    def manager(self) -> EnvironmentManager:
        return self._manager

    @property
    def warnings(self) -> tuple[str, ...]:
        """Warnings from the most recent `generate_environment_setup_steps` call."""

        return tuple(self._warnings)

    def generate_environment_setup_steps(
        self,
        environments: Iterable[EnvironmentConfig | str],
        options: EnvironmentStepOptions | Mapping[str, Any] | None = None,
    ) -> list[WorkflowStep]:
        opts = EnvironmentStepOptions.from_value(options)
        envs = [as_environment(env) for env in environments]
        names = [env.name for env in envs]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate environment names: {', '.join(names)}")
        self._warnings = []

        steps = [self.detection_step(envs, dispatch_input=opts.dispatch_input)]
        if opts.validate_secrets:
            steps.extend(s for s in (self._secret_validation_step(env) for env in envs) if s)
        if opts.include_oidc:
            steps.extend(s for s in (self._oidc_step(env) for env in envs) if s)
        if opts.generate_env_files:
            steps.extend(s for s in (self._env_file_step(env) for env in envs) if s)
        if opts.include_config_generation:
            steps.extend(s for s in (self._config_files_step(env) for env in envs) if s)

        self._logger.debug(
            "Generated %d environment setup steps for %s", len(steps), ", ".join(names) or "<none>"
        )
        return steps

    def generate_deployment_steps(
        self,
        environments: Iterable[EnvironmentConfig | str],
        strategy: str | None = None,
    ) -> list[WorkflowStep]:
        if strategy is not None and strategy not in DEPLOYMENT_STRATEGIES:
            raise ValueError(
                f"Unknown deployment strategy: {strategy!r} (known: {', '.join(DEPLOYMENT_STRATEGIES)})"
            )
        steps: list[WorkflowStep] = []
        for env in (as_environment(e) for e in environments):
            chosen = strategy or env.deployment_strategy
            steps.append(_DEPLOY_BUILDERS[chosen](env))
        return steps

    def detection_step(
        self, environments: Iterable[EnvironmentConfig], *, dispatch_input: str = "environment"
    ) -> WorkflowStep:
        """Resolve the active environment: dispatch input, then branch, then the fallback.

        Branch checks are emitted in precedence order (production > staging >
        development); only environments that are configured take part.
        """

        ordered = _by_precedence(environments)
        fallback = FALLBACK_ENVIRONMENT
        if ordered and not any(env.name == FALLBACK_ENVIRONMENT for env in ordered):
            unbranched = [env for env in ordered if not self.branch_for(env)]
            fallback = (unbranched or ordered)[-1].name

        dispatch = "${{ github.event.inputs.%s }}" % dispatch_input
        lines = [f'if [ -n "{dispatch}" ]; then', f'  ENVIRONMENT="{dispatch}"']
        for env in ordered:
            branch = self.branch_for(env)
            if branch and env.name != fallback:
                lines.append(f'elif [ "${{{{ github.ref }}}}" = "refs/heads/{branch}" ]; then')
                lines.append(f'  ENVIRONMENT="{env.name}"')
        lines.extend(["else", f'  ENVIRONMENT="{fallback}"', "fi"])
        lines.append('echo "environment=$ENVIRONMENT" >> "$GITHUB_OUTPUT"')
        lines.append('echo "Deploying to environment: $ENVIRONMENT"')
        return WorkflowStep(id=DETECT_STEP_ID, name="Determine target environment", run="\n".join(lines))

    def required_secrets(self, environment: EnvironmentConfig) -> tuple[str, ...]:
        names = list(environment.secrets)
        for secret in self._manager.secrets_for(environment):
            if secret.required and secret.name not in names:
                names.append(secret.name)
        return tuple(names)

    def branch_for(self, environment: EnvironmentConfig) -> str | None:
        if environment.branch:
            return environment.branch
        if environment.name in ENVIRONMENT_PRECEDENCE:
            return DEFAULT_BRANCHES.get(environment.name)
        return None

    def _secret_validation_step(self, env: EnvironmentConfig) -> WorkflowStep | None:
        secrets = self.required_secrets(env)
        if not secrets:
            return None
        lines = [f'echo "Validating required secrets for {env.name}..."']
        lines.extend(
            f'if [ -z "${name}" ]; then echo "::error::{name} is not set"; exit 1; fi' for name in secrets
        )
        lines.append('echo "All required secrets are present"')
        return WorkflowStep(
            id=f"validate-secrets-{_slug(env.name)}",
            name=f"Validate {env.name} secrets",
            if_=environment_guard(env.name),
            run="\n".join(lines),
            env={name: secret_ref(name) for name in secrets},
        )

    def _oidc_step(self, env: EnvironmentConfig) -> WorkflowStep | None:
        config = self._manager.oidc_for(env)
        if config is None:
            return None
        return _OIDC_BUILDERS[config.provider](env, config)

    def variable_defaults(self, env: EnvironmentConfig) -> dict[str, str | None]:
        """Fallback value per in-scope variable: the environment's own default, then the registered value."""

        defaults: dict[str, str | None] = {name: value or None for name, value in env.variables.items()}
        for variable in self._manager.variables_for(env):
            if defaults.get(variable.name) is None:
                defaults[variable.name] = variable.value or None
        return defaults

    def _env_file_step(self, env: EnvironmentConfig) -> WorkflowStep | None:
        bindings = {name: variable_ref(name, default) for name, default in self.variable_defaults(env).items()}
        for name in env.secrets:
            bindings[name] = secret_ref(name)
        for secret in self._manager.secrets_for(env):
            bindings.setdefault(secret.name, secret_ref(secret.name))
        if not bindings:
            return None

        target = f".env.{env.name}"
        lines = [f': > "{target}"']
        lines.extend(f'echo "{name}=${name}" >> "{target}"' for name in bindings)
        return WorkflowStep(
            id=f"env-file-{_slug(env.name)}",
            name=f"Create .env file for {env.name}",
            if_=environment_guard(env.name),
            run="\n".join(lines),
            env=bindings,
        )

    def _config_files_step(self, env: EnvironmentConfig) -> WorkflowStep | None:
        templates = self._manager.templates_for(env)
        if not templates:
            return None
        variables = self.variable_defaults(env)
        secrets = set(env.secrets) | {s.name for s in self._manager.secrets_for(env)}

        lines: list[str] = []
        for template in templates:
            filename, content = self.render_template(template, env, variables=variables, secrets=secrets)
            marker = f"READMECICD_{_slug(filename).upper().replace('-', '_')}"
            lines.append(f"cat > \"{filename}\" << '{marker}'")
            lines.extend(content.splitlines())
            lines.append(marker)
        return WorkflowStep(
            id=f"config-files-{_slug(env.name)}",
            name=f"Generate configuration files for {env.name}",
            if_=environment_guard(env.name),
            run="\n".join(lines),
        )

    def render_template(
        self,
        template: ConfigFileTemplate,
        env: EnvironmentConfig,
        *,
        variables: Mapping[str, str | None],
        secrets: set[str],
    ) -> tuple[str, str]:
        """Substitute declared, in-scope `{{NAME}}` tokens; others are left verbatim with a warning."""

        declared_vars = set(template.variables)
        declared_secrets = set(template.secrets)

        def substitute(match: re.Match[str]) -> str:
            token = match.group(1)
            if token == "environment":
                return env.name
            if token in declared_secrets and token in secrets:
                return secret_ref(token)
            if token in declared_vars and token in variables:
                return variable_ref(token, variables[token])
            if token in declared_vars or token in declared_secrets:
                reason = f"is not scoped to environment '{env.name}'"
            else:
                reason = "is not declared by the template"
            self._warnings.append(f"Template {template.filename}: placeholder '{token}' {reason}")
            self._logger.warning("Template %s: placeholder %s %s", template.filename, token, reason)
            return match.group(0)

        filename = template.filename.replace("{{environment}}", env.name)
        return filename, _TOKEN_RE.sub(substitute, template.content)


def _aws_step(env: EnvironmentConfig, config: OIDCConfig) -> WorkflowStep:
    return WorkflowStep(
        id=f"oidc-{_slug(env.name)}",
        name=f"Configure AWS credentials for {env.name}",
        if_=environment_guard(env.name),
        uses="aws-actions/configure-aws-credentials@v4",
        with_={
            "role-to-assume": config.role_arn or secret_ref(f"AWS_ROLE_ARN_{_slug(env.name).upper().replace('-', '_')}"),
            "role-session-name": f"GitHubActions-{env.name}",
            "aws-region": config.region or "${{ vars.AWS_REGION || 'us-east-1' }}",
            "audience": config.audience or "sts.amazonaws.com",
        },
    )


def _azure_step(env: EnvironmentConfig, config: OIDCConfig) -> WorkflowStep:
    return WorkflowStep(
        id=f"oidc-{_slug(env.name)}",
        name=f"Azure login for {env.name}",
        if_=environment_guard(env.name),
        uses="azure/login@v1",
        with_={
            "client-id": secret_ref("AZURE_CLIENT_ID"),
            "tenant-id": secret_ref("AZURE_TENANT_ID"),
            "subscription-id": config.subscription_id or secret_ref("AZURE_SUBSCRIPTION_ID"),
            "audience": config.audience or "api://AzureADTokenExchange",
        },
    )


def _gcp_step(env: EnvironmentConfig, config: OIDCConfig) -> WorkflowStep:
    return WorkflowStep(
        id=f"oidc-{_slug(env.name)}",
        name=f"Authenticate to Google Cloud for {env.name}",
        if_=environment_guard(env.name),
        uses="google-github-actions/auth@v2",
        with_={
            "workload_identity_provider": config.workload_identity_provider
            or secret_ref("GCP_WORKLOAD_IDENTITY_PROVIDER"),
            "service_account": config.service_account or secret_ref("GCP_SERVICE_ACCOUNT"),
            "audience": config.audience or "https://github.com/google-github-actions/auth",
        },
    )


_OIDC_BUILDERS = {"aws": _aws_step, "azure": _azure_step, "gcp": _gcp_step}


def _static_deploy(env: EnvironmentConfig) -> WorkflowStep:
    return WorkflowStep(
        id=f"deploy-{_slug(env.name)}",
        name=f"Deploy to {env.name} (Static)",
        if_=environment_guard(env.name),
        run="\n".join(
            [
                "npm run build",
                f'echo "Deploying static assets to {env.name}"',
            ]
        ),
        env={"DEPLOY_ENV": env.name},
    )


def _container_deploy(env: EnvironmentConfig) -> WorkflowStep:
    image = "${{ github.repository }}:%s-${{ github.sha }}" % _slug(env.name)
    return WorkflowStep(
        id=f"deploy-{_slug(env.name)}",
        name=f"Build and push container for {env.name}",
        if_=environment_guard(env.name),
        run="\n".join([f'docker build -t "{image}" .', f'docker push "{image}"']),
        env={"DEPLOY_ENV": env.name},
    )


def _serverless_deploy(env: EnvironmentConfig) -> WorkflowStep:
    return WorkflowStep(
        id=f"deploy-{_slug(env.name)}",
        name=f"Deploy serverless to {env.name}",
        if_=environment_guard(env.name),
        run=f"serverless deploy --stage {env.name}",
        env={"DEPLOY_ENV": env.name},
    )


def _traditional_deploy(env: EnvironmentConfig) -> WorkflowStep:
    return WorkflowStep(
        id=f"deploy-{_slug(env.name)}",
        name=f"Deploy to {env.name} (Traditional)",
        if_=environment_guard(env.name),
        run='rsync -avz --delete ./dist/ "$DEPLOY_USER@$DEPLOY_HOST:$DEPLOY_PATH"',
        env={
            "DEPLOY_ENV": env.name,
            "DEPLOY_HOST": secret_ref("DEPLOY_HOST"),
            "DEPLOY_USER": secret_ref("DEPLOY_USER"),
            "DEPLOY_PATH": variable_ref("DEPLOY_PATH"),
        },
    )


_DEPLOY_BUILDERS = {
    "static": _static_deploy,
    "container": _container_deploy,
    "serverless": _serverless_deploy,
    "traditional": _traditional_deploy,
}
