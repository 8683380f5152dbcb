"""CLI for the admission gate."""

import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import click

from admission_gate.cli.log_setup import setup_logging
from admission_gate.core.config import GateConfig, InitialPolicyConfig, get_default_paths
from admission_gate.core.errors import AdmissionError
from admission_gate.core.models import (
    GENERIC_DENIAL_MESSAGE,
    Capability,
    DomainPolicy,
    EventKind,
    Role,
    SignInStatus,
)
from admission_gate.core.validators import require_valid_domain
from admission_gate.gate import AdmissionGate

CAPABILITY_CHOICES = [c.value for c in Capability]


class CliContext:
    def __init__(self, config_path: Path):
        self.config_path = config_path
        self._config: Optional[GateConfig] = None
        self._gate: Optional[AdmissionGate] = None

    @property
    def config(self) -> GateConfig:
        if self._config is None:
            self._config = GateConfig.load(self.config_path)
        return self._config

    @property
    def gate(self) -> AdmissionGate:
        if self._gate is None:
            self._gate = AdmissionGate.from_config(self.config)
        return self._gate

    def actor(self, actor: Optional[str]) -> str:
        resolved = actor or self.config.admin_email
        if not resolved:
            click.echo("❌ No actor given. Use --actor or set admin_email in config.", err=True)
            sys.exit(1)
        return resolved


pass_cli = click.make_pass_decorator(CliContext)

actor_option = click.option(
    "--actor", "-a", help="Admin email performing the action (defaults to admin_email)"
)


@contextmanager
def _admin_errors():
    """Print the error kind and message, then exit 1."""
    try:
        yield
    except AdmissionError as e:
        click.echo(f"❌ {e.kind}: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--config", "-c", type=click.Path(), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def main(ctx, config: Optional[str], verbose: bool):
    """Email/domain admission control."""
    config_path = Path(config).expanduser() if config else get_default_paths().config
    cli_ctx = CliContext(config_path)
    ctx.obj = cli_ctx
    setup_logging(cli_ctx.config.log_level, cli_ctx.config.log_file, verbose=verbose)


@main.command()
@click.option("--admin-email", prompt="Admin email address", help="First admin")
@click.option(
    "--domains",
    prompt="Allowed domains (comma-separated)",
    default="",
    show_default=False,
    help="Comma-separated allowed domains",
)
@click.option(
    "--allow-new-users/--no-allow-new-users",
    prompt="Allow new users to request access?",
    default=True,
)
@click.option(
    "--require-approval/--no-require-approval",
    prompt="Require admin approval for new users?",
    default=False,
)
@click.option("--state", type=click.Path(), help="State file location")
@pass_cli
def init(
    cli: CliContext,
    admin_email: str,
    domains: str,
    allow_new_users: bool,
    require_approval: bool,
    state: Optional[str],
):
    """Create config, seed the policy and bootstrap the first admin."""
    config = cli.config
    config.admin_email = admin_email.strip().lower()
    if state:
        config.state_path = Path(state).expanduser()
    config.initial_policy = InitialPolicyConfig(
        allowed_domains=[d.strip() for d in domains.split(",") if d.strip()],
        allow_new_users=allow_new_users,
        require_approval=require_approval,
    )

    gate = cli.gate
    with _admin_errors():
        for domain in config.initial_policy.allowed_domains:
            require_valid_domain(domain)
        gate.authority.bootstrap_admin(config.admin_email)
        policy = gate.initialize()

    config.save(cli.config_path)
    click.echo(f"✅ Config saved: {cli.config_path}")
    click.echo(f"✅ State: {config.resolved_state_path}")
    click.echo(f"✅ Admin: {config.admin_email}")
    _echo_policy(policy)


@main.command("sign-in")
@click.argument("email")
@click.option("--unverified", is_flag=True, help="Email not verified by the provider")
@pass_cli
def sign_in(cli: CliContext, email: str, unverified: bool):
    """Run the self-service sign-in flow for EMAIL."""
    try:
        outcome = cli.gate.sign_in(email, email_verified=not unverified)
    except AdmissionError:
        # self-service never reveals why
        click.echo(GENERIC_DENIAL_MESSAGE, err=True)
        sys.exit(1)

    click.echo(outcome.message)
    if outcome.request_id:
        click.echo(f"Request id: {outcome.request_id}")
    if outcome.status == SignInStatus.DENIED:
        sys.exit(1)


@main.command()
@click.argument("email")
@pass_cli
def check(cli: CliContext, email: str):
    """Evaluate EMAIL against the policy and show the reason."""
    with _admin_errors():
        result = cli.gate.check_admission(email)
    status = "admitted" if result.admitted else "not admitted"
    click.echo(f"{email}: {status} ({result.reason.value})")


# --- Requests ---


@main.group()
def requests():
    """Admission requests."""
    pass


@requests.command("create")
@click.argument("email")
@pass_cli
def requests_create(cli: CliContext, email: str):
    """Create a pending request for EMAIL."""
    with _admin_errors():
        request = cli.gate.request_access(email)
    click.echo(f"✅ Request {request.id} pending for {request.email}")


@requests.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include processed requests")
@actor_option
@pass_cli
def requests_list(cli: CliContext, show_all: bool, actor: Optional[str]):
    """List pending requests, oldest first."""
    actor = cli.actor(actor)
    with _admin_errors():
        if show_all:
            items = cli.gate.list_requests(actor)
        else:
            items = cli.gate.list_pending(actor)

    if not items:
        click.echo("No requests.")
        return

    click.echo(f"{'ID':<34} {'EMAIL':<32} {'STATUS':<10} {'REQUESTED'}")
    click.echo("-" * 96)
    for r in items:
        click.echo(
            f"{r.id:<34} {r.email:<32} {r.status.value:<10} {r.requested_at:%Y-%m-%d %H:%M}"
        )


@requests.command("approve")
@click.argument("request_id")
@actor_option
@pass_cli
def requests_approve(cli: CliContext, request_id: str, actor: Optional[str]):
    """Approve a pending request and whitelist its email."""
    actor = cli.actor(actor)
    with _admin_errors():
        request = cli.gate.approve(actor, request_id)
    click.echo(f"✅ Approved {request.email}")


@requests.command("reject")
@click.argument("request_id")
@actor_option
@pass_cli
def requests_reject(cli: CliContext, request_id: str, actor: Optional[str]):
    """Reject a pending request."""
    actor = cli.actor(actor)
    with _admin_errors():
        request = cli.gate.reject(actor, request_id)
    click.echo(f"✅ Rejected {request.email}")


# --- Whitelist ---


@main.group()
def whitelist():
    """Whitelisted users."""
    pass


@whitelist.command("add")
@click.argument("email")
@click.option(
    "--role", type=click.Choice([r.value for r in Role]), default=Role.USER.value
)
@actor_option
@pass_cli
def whitelist_add(cli: CliContext, email: str, role: str, actor: Optional[str]):
    """Add EMAIL to the whitelist."""
    actor = cli.actor(actor)
    with _admin_errors():
        entry = cli.gate.add_to_whitelist(actor, email, Role(role))
    click.echo(f"✅ {entry.email} has been added to whitelist")


@whitelist.command("remove")
@click.argument("email")
@actor_option
@pass_cli
def whitelist_remove(cli: CliContext, email: str, actor: Optional[str]):
    """Remove EMAIL from the whitelist."""
    actor = cli.actor(actor)
    with _admin_errors():
        cli.gate.remove_from_whitelist(actor, email)
    click.echo(f"✅ {email} has been removed from whitelist")


@whitelist.command("list")
@actor_option
@pass_cli
def whitelist_list(cli: CliContext, actor: Optional[str]):
    """Show all whitelisted users."""
    actor = cli.actor(actor)
    with _admin_errors():
        entries = cli.gate.list_whitelist(actor)

    if not entries:
        click.echo("No whitelisted users found")
        return
    for e in entries:
        click.echo(f"  {e.email:<40} {e.role.value:<6} added by {e.added_by}")


# --- Policy ---


@main.group()
def policy():
    """Domain policy."""
    pass


def _echo_policy(p: DomainPolicy) -> None:
    click.echo(f"Version:          {p.version}")
    click.echo(f"Allowed domains:  {', '.join(p.allowed_domains) or '-'}")
    click.echo(f"Allowed emails:   {', '.join(p.allowed_emails) or '-'}")
    click.echo(f"Allow new users:  {p.allow_new_users}")
    click.echo(f"Require approval: {p.require_approval}")


@policy.command("show")
@pass_cli
def policy_show(cli: CliContext):
    """Show the current policy."""
    with _admin_errors():
        p = cli.gate.reload_policy()
    _echo_policy(p)


@policy.command("set")
@click.option("--allow-new-users/--no-allow-new-users", default=None)
@click.option("--require-approval/--no-require-approval", default=None)
@actor_option
@pass_cli
def policy_set(
    cli: CliContext,
    allow_new_users: Optional[bool],
    require_approval: Optional[bool],
    actor: Optional[str],
):
    """Change new-user settings."""
    actor = cli.actor(actor)
    changes = {}
    if allow_new_users is not None:
        changes["allow_new_users"] = allow_new_users
    if require_approval is not None:
        changes["require_approval"] = require_approval
    if not changes:
        click.echo("Nothing to change.")
        return
    with _admin_errors():
        p = cli.gate.update_policy(actor, **changes)
    _echo_policy(p)


@policy.command("add-domain")
@click.argument("domain")
@actor_option
@pass_cli
def policy_add_domain(cli: CliContext, domain: str, actor: Optional[str]):
    """Allow every email at DOMAIN."""
    actor = cli.actor(actor)
    with _admin_errors():
        p = cli.gate.add_allowed_domain(actor, domain)
    _echo_policy(p)


@policy.command("remove-domain")
@click.argument("domain")
@actor_option
@pass_cli
def policy_remove_domain(cli: CliContext, domain: str, actor: Optional[str]):
    actor = cli.actor(actor)
    with _admin_errors():
        p = cli.gate.remove_allowed_domain(actor, domain)
    _echo_policy(p)


@policy.command("add-email")
@click.argument("email")
@actor_option
@pass_cli
def policy_add_email(cli: CliContext, email: str, actor: Optional[str]):
    actor = cli.actor(actor)
    with _admin_errors():
        p = cli.gate.add_allowed_email(actor, email)
    _echo_policy(p)


@policy.command("remove-email")
@click.argument("email")
@actor_option
@pass_cli
def policy_remove_email(cli: CliContext, email: str, actor: Optional[str]):
    actor = cli.actor(actor)
    with _admin_errors():
        p = cli.gate.remove_allowed_email(actor, email)
    _echo_policy(p)


# --- Admins ---


@main.group()
def admin():
    """Administrator records."""
    pass


@admin.command("add")
@click.argument("email")
@click.option(
    "--permission",
    "-p",
    "permissions",
    multiple=True,
    type=click.Choice(CAPABILITY_CHOICES),
    help="Capability to grant (repeatable, default: all)",
)
@pass_cli
def admin_add(cli: CliContext, email: str, permissions: tuple[str, ...]):
    """Bootstrap an admin record directly in the store."""
    with _admin_errors():
        record = cli.gate.authority.bootstrap_admin(
            email, [Capability(p) for p in permissions] if permissions else None
        )
    click.echo(f"✅ Admin {record.email}: {', '.join(sorted(p.value for p in record.permissions))}")


@admin.command("grant")
@click.argument("email")
@click.option(
    "--permission",
    "-p",
    "permissions",
    multiple=True,
    type=click.Choice(CAPABILITY_CHOICES),
)
@actor_option
@pass_cli
def admin_grant(
    cli: CliContext, email: str, permissions: tuple[str, ...], actor: Optional[str]
):
    """Make EMAIL an admin (requires manageUsers)."""
    actor = cli.actor(actor)
    with _admin_errors():
        record = cli.gate.grant_admin(
            actor, email, [Capability(p) for p in permissions] if permissions else None
        )
    click.echo(f"✅ Admin {record.email}: {', '.join(sorted(p.value for p in record.permissions))}")


@admin.command("revoke")
@click.argument("email")
@actor_option
@pass_cli
def admin_revoke(cli: CliContext, email: str, actor: Optional[str]):
    """Deactivate EMAIL's admin record (requires manageUsers)."""
    actor = cli.actor(actor)
    with _admin_errors():
        record = cli.gate.revoke_admin(actor, email)
    click.echo(f"✅ Revoked admin {record.email}")


@admin.command("list")
@pass_cli
def admin_list(cli: CliContext):
    with _admin_errors():
        records = cli.gate.authority.list_admins()
    for r in records:
        state = "active" if r.is_active else "inactive"
        perms = ", ".join(sorted(p.value for p in r.permissions))
        click.echo(f"  {r.email:<40} {state:<8} {perms}")


# --- Analytics ---


@main.command()
@actor_option
@pass_cli
def stats(cli: CliContext, actor: Optional[str]):
    """Whitelist and request counts."""
    actor = cli.actor(actor)
    with _admin_errors():
        s = cli.gate.stats(actor)
    click.echo(f"Total users:       {s.total_users}")
    click.echo(f"Active users:      {s.active_users}")
    click.echo(f"Pending requests:  {s.pending_requests}")
    click.echo(f"Approved requests: {s.approved_requests}")
    click.echo(f"Rejected requests: {s.rejected_requests}")


@main.command()
@click.option("--lines", "-n", type=int, default=50, help="Number of events to show")
@click.option("--kind", type=click.Choice([k.value for k in EventKind]))
@actor_option
@pass_cli
def events(cli: CliContext, lines: int, kind: Optional[str], actor: Optional[str]):
    """Show recent security events."""
    actor = cli.actor(actor)
    with _admin_errors():
        items = cli.gate.recent_events(
            actor, limit=lines, kind=EventKind(kind) if kind else None
        )
    for e in items:
        click.echo(f"{e.timestamp:%Y-%m-%d %H:%M:%S} {e.kind.value:<18} {e.actor:<32} {e.detail}")


if __name__ == "__main__":
    main()
