"""Exchange Online PowerShell client.

Executes Exchange Online PowerShell cmdlets via subprocess to manage
distribution list membership and shared mailbox permissions.

This uses the official Exchange Online PowerShell module which is fully
supported by Microsoft.

Prerequisites:
1. Install Exchange Online Management module:
   Install-Module -Name ExchangeOnlineManagement

2. For app-only (unattended) authentication, you need:
   - Azure AD App Registration with Exchange.ManageAsApp permission
   - A certificate (self-signed or CA-signed) uploaded to the app
   - The certificate installed locally (or accessible as .pfx file)
   - App assigned "Exchange Recipient Administrator" role

References:
- https://learn.microsoft.com/en-us/powershell/exchange/app-only-auth-powershell-v2
- https://learn.microsoft.com/en-us/powershell/exchange/exchange-online-powershell-v2
"""

import asyncio
import json
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

from m365provision.core.config import get_exchange_credentials
from m365provision.core.errors import ExchangeCommandError
from m365provision.provisioning.models import GrantResult

logger = logging.getLogger(__name__)

# Markers written by _run_cmdlet's try/catch wrapper
SUCCESS_MARKER = "SUCCESS"
WARNING_MARKER = "WARNING:"
ERROR_MARKER = "ERROR:"

# Add-MailboxPermission / Add-RecipientPermission report duplicates as
# warnings or errors depending on module version
ALREADY_GRANTED_PATTERNS = [
    r"existing permission entry was found",
    r"access control entry is already present",
    r"already has (the )?permission",
]

RECIPIENT_FIELDS = "Identity, DisplayName, PrimarySmtpAddress, RecipientTypeDetails"


def ps_quote(value: str) -> str:
    """Escape a value for use inside a single-quoted PowerShell string."""
    return value.replace("'", "''")


def is_already_granted(message: str) -> bool:
    """Check if a permission cmdlet message means the permission exists."""
    return any(re.search(p, message, re.IGNORECASE) for p in ALREADY_GRANTED_PATTERNS)


def marker_result(output: str) -> str:
    """Extract the marker line written by the cmdlet wrapper.

    Module noise may precede the marker and a multi-line message may follow
    it; continuation lines are joined onto the marker line.
    """
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    markers = (SUCCESS_MARKER, WARNING_MARKER, ERROR_MARKER)
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].startswith(markers):
            return " ".join(lines[index:])
    return lines[-1] if lines else ""


@dataclass
class ExchangeRecipient:
    """An Exchange Online distribution group or mailbox."""

    identity: str
    display_name: str
    primary_smtp_address: str
    recipient_type: str


def _as_list(result: dict | list | str | None) -> list[dict]:
    """Normalize ConvertTo-Json output (single object vs array)."""
    if isinstance(result, dict):
        return [result] if "raw" not in result and result else []
    if isinstance(result, list):
        return [r for r in result if isinstance(r, dict)]
    return []


class ExchangeOnlineClient:
    """Client for Exchange Online PowerShell operations.

    Executes Exchange cmdlets via subprocess using the official
    ExchangeOnlineManagement PowerShell module. Each call opens its own
    connection, so blocking calls are pushed to a worker thread.
    """

    def __init__(
        self,
        certificate_thumbprint: str | None = None,
        certificate_path: Path | str | None = None,
        certificate_password: str | None = None,
        organization: str | None = None,
        timeout: int = 120,
    ) -> None:
        """Initialize the Exchange Online client.

        Args:
            certificate_thumbprint: Thumbprint of installed certificate (Windows)
            certificate_path: Path to .pfx certificate file (cross-platform)
            certificate_password: Password for the .pfx file
            organization: The organization domain (overrides env config)
            timeout: Seconds before a PowerShell invocation is abandoned
        """
        creds = get_exchange_credentials()
        self.tenant_id = creds.tenant_id
        self.client_id = creds.client_id
        self.organization = organization or creds.organization
        # Use passed params if provided, otherwise use from credentials
        self.certificate_thumbprint = certificate_thumbprint or creds.certificate_thumbprint
        self.certificate_path = certificate_path or creds.certificate_path
        self.certificate_password = certificate_password or creds.certificate_password
        self.timeout = timeout

    def _build_connect_command(self) -> str:
        """Build the Connect-ExchangeOnline command."""
        # Suppress banner output with *>$null to prevent it from mixing with JSON output
        # Prefer certificate_path over thumbprint (thumbprint is Windows-only)
        if self.certificate_path:
            # For empty password (Key Vault certs), skip the -CertificatePassword param
            if self.certificate_password:
                secure_str = (
                    f"-CertificatePassword (ConvertTo-SecureString "
                    f"-String '{ps_quote(self.certificate_password)}' -AsPlainText -Force) "
                )
            else:
                secure_str = ""
            return (
                f"Connect-ExchangeOnline "
                f"-AppId '{self.client_id}' "
                f"-CertificateFilePath '{self.certificate_path}' "
                f"{secure_str}"
                f"-Organization '{self.organization}' -ShowBanner:$false *>$null"
            )
        elif self.certificate_thumbprint:
            return (
                f"Connect-ExchangeOnline "
                f"-AppId '{self.client_id}' "
                f"-CertificateThumbprint '{self.certificate_thumbprint}' "
                f"-Organization '{self.organization}' -ShowBanner:$false *>$null"
            )
        else:
            raise ValueError("Either certificate_thumbprint or certificate_path must be provided")

    def _run_powershell(self, commands: list[str], parse_json: bool = True) -> dict | list | str:
        """Run PowerShell commands and return the result.

        Args:
            commands: List of PowerShell commands to execute
            parse_json: If True, parse output as JSON

        Returns:
            Parsed JSON (dict or list), or raw string output

        Raises:
            ExchangeCommandError: If PowerShell cannot be run or exits non-zero
        """
        full_script = [
            "Import-Module ExchangeOnlineManagement -ErrorAction Stop",
            self._build_connect_command(),
            *commands,
            "Disconnect-ExchangeOnline -Confirm:$false *>$null",
        ]

        script = "; ".join(full_script)

        try:
            result = subprocess.run(  # noqa: S603
                ["pwsh", "-NoProfile", "-NonInteractive", "-Command", script],  # noqa: S607
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.error("PowerShell command timed out")
            raise ExchangeCommandError(
                f"PowerShell command timed out after {self.timeout}s"
            ) from e
        except FileNotFoundError as e:
            logger.error("PowerShell (pwsh) not found. Install PowerShell 7+.")
            raise ExchangeCommandError("PowerShell (pwsh) not found") from e

        if result.returncode != 0:
            logger.error(f"PowerShell error: {result.stderr}")
            raise ExchangeCommandError(result.stderr.strip() or "PowerShell exited with an error")

        output = result.stdout.strip()
        if not output:
            return {} if parse_json else ""

        if parse_json:
            try:
                return json.loads(output)
            except json.JSONDecodeError:
                # Banner text may precede JSON - try to find JSON in output
                starts = [i for i in (output.find("{"), output.find("[")) if i != -1]
                if starts:
                    try:
                        return json.loads(output[min(starts) :])
                    except json.JSONDecodeError:
                        pass
                if "{" in output or "[" in output:
                    logger.warning(f"Failed to parse JSON output: {output[:200]}")
                return {"raw": output}

        return output

    def _run_cmdlet(self, command: str) -> str:
        """Run a single cmdlet and report SUCCESS, WARNING: ..., or ERROR: ...

        Terminating errors are caught inside PowerShell so that the
        exception message reaches Python intact, folded onto one line.
        """
        script = [
            (
                f"try {{ {command} -ErrorAction Stop -WarningVariable cmdWarnings "
                "-WarningAction SilentlyContinue | Out-Null; "
                f"if ($cmdWarnings) {{ '{WARNING_MARKER} ' + ($cmdWarnings -join ' ') }} "
                f"else {{ '{SUCCESS_MARKER}' }} }} "
                f"catch {{ '{ERROR_MARKER} ' + ($_.Exception.Message -replace '\\r?\\n', ' ') }}"
            ),
        ]
        output = str(self._run_powershell(script, parse_json=False))
        return marker_result(output)

    def _get_recipients(self, command: str) -> list[ExchangeRecipient]:
        result = self._run_powershell(
            [f"{command} | Select-Object {RECIPIENT_FIELDS} | ConvertTo-Json"]
        )
        return [
            ExchangeRecipient(
                identity=str(r.get("Identity", "")),
                display_name=r.get("DisplayName", "") or "",
                primary_smtp_address=(r.get("PrimarySmtpAddress", "") or "").lower(),
                recipient_type=r.get("RecipientTypeDetails", "") or "",
            )
            for r in _as_list(result)
            if r.get("Identity")
        ]

    async def get_distribution_lists(self) -> list[ExchangeRecipient]:
        """Get all distribution lists (excluding mail-enabled security groups).

        Returns:
            List of ExchangeRecipient
        """
        recipients = await asyncio.to_thread(
            self._get_recipients,
            "Get-DistributionGroup -RecipientTypeDetails MailUniversalDistributionGroup "
            "-ResultSize Unlimited",
        )
        logger.info(f"Found {len(recipients)} distribution lists")
        return recipients

    async def get_shared_mailboxes(self) -> list[ExchangeRecipient]:
        """Get all shared mailboxes.

        Returns:
            List of ExchangeRecipient
        """
        recipients = await asyncio.to_thread(
            self._get_recipients,
            "Get-Mailbox -RecipientTypeDetails SharedMailbox -ResultSize Unlimited",
        )
        logger.info(f"Found {len(recipients)} shared mailboxes")
        return recipients

    async def get_distribution_group_members(self, identity: str) -> list[str]:
        """Get members of a distribution group.

        Args:
            identity: Group name, alias, or email address

        Returns:
            List of member email addresses (lowercase)

        Raises:
            ExchangeCommandError: If the group cannot be read
        """
        commands = [
            f"Get-DistributionGroupMember -Identity '{ps_quote(identity)}' "
            "-ResultSize Unlimited -ErrorAction Stop "
            "| Select-Object PrimarySmtpAddress | ConvertTo-Json",
        ]

        result = await asyncio.to_thread(self._run_powershell, commands)
        return [
            m["PrimarySmtpAddress"].lower()
            for m in _as_list(result)
            if m.get("PrimarySmtpAddress")
        ]

    async def add_distribution_group_member(self, identity: str, member: str) -> None:
        """Add a member to a distribution group.

        Args:
            identity: Group name, alias, or email address
            member: Member email address to add

        Raises:
            ExchangeCommandError: With the cmdlet's message if the add failed
        """
        command = (
            f"Add-DistributionGroupMember -Identity '{ps_quote(identity)}' "
            f"-Member '{ps_quote(member)}' -BypassSecurityGroupManagerCheck"
        )
        result = await asyncio.to_thread(self._run_cmdlet, command)

        if result.startswith(ERROR_MARKER):
            message = result[len(ERROR_MARKER) :].strip()
            if "already a member" in message.lower():
                logger.debug(f"{member} is already a member of {identity}")
                return
            logger.error(f"Failed to add {member} to {identity}: {message}")
            raise ExchangeCommandError(message)

        logger.info(f"Added {member} to {identity}")

    async def _grant(self, command: str, permission: str, identity: str, user: str) -> GrantResult:
        result = await asyncio.to_thread(self._run_cmdlet, command)

        if result.startswith(ERROR_MARKER):
            message = result[len(ERROR_MARKER) :].strip()
            if is_already_granted(message):
                logger.info(f"{user} already has {permission} on {identity}")
                return GrantResult.ALREADY_EXISTS
            logger.error(f"Failed to grant {permission} on {identity} to {user}: {message}")
            raise ExchangeCommandError(message)

        if result.startswith(WARNING_MARKER) and is_already_granted(result):
            logger.info(f"{user} already has {permission} on {identity}")
            return GrantResult.ALREADY_EXISTS

        logger.info(f"Granted {permission} on {identity} to {user}")
        return GrantResult.SUCCESS

    async def add_full_access_permission(
        self,
        identity: str,
        user: str,
        auto_mapping: bool = True,
    ) -> GrantResult:
        """Grant FullAccess on a mailbox.

        Args:
            identity: Mailbox name, alias, or email address
            user: User to grant access to
            auto_mapping: Let Outlook add the mailbox automatically

        Returns:
            GrantResult.SUCCESS, or ALREADY_EXISTS if the permission was present

        Raises:
            ExchangeCommandError: With the cmdlet's message if the grant failed
        """
        auto_str = "$true" if auto_mapping else "$false"
        command = (
            f"Add-MailboxPermission -Identity '{ps_quote(identity)}' -User '{ps_quote(user)}' "
            f"-AccessRights FullAccess -InheritanceType All -AutoMapping:{auto_str}"
        )
        return await self._grant(command, "FullAccess", identity, user)

    async def add_send_as_permission(self, identity: str, user: str) -> GrantResult:
        """Grant SendAs on a mailbox.

        Args:
            identity: Mailbox name, alias, or email address
            user: User to grant SendAs to

        Returns:
            GrantResult.SUCCESS, or ALREADY_EXISTS if the permission was present

        Raises:
            ExchangeCommandError: With the cmdlet's message if the grant failed
        """
        command = (
            f"Add-RecipientPermission -Identity '{ps_quote(identity)}' "
            f"-Trustee '{ps_quote(user)}' -AccessRights SendAs -Confirm:$false"
        )
        return await self._grant(command, "SendAs", identity, user)

    async def close(self) -> None:
        """Close the client (no-op for subprocess approach)."""
        pass
