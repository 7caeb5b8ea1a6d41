"""
Plaid API Client Service

Handles the Plaid calls the ledger pipeline depends on: transaction deltas,
live account balances and institution lookups.
"""
import json
import logging
import threading
from typing import Optional, Dict, Any

import plaid
from plaid.api import plaid_api
from plaid.model.country_code import CountryCode
from plaid.model.transactions_sync_request import TransactionsSyncRequest
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.exceptions import ApiException

from fintrack.config import settings
from fintrack.exceptions import ConfigurationError, ConsentRequired, TransientSyncFailure
from fintrack.models.schemas import ExternalTransaction
from fintrack.services.categories import raw_category_code

logger = logging.getLogger(__name__)

# Error codes meaning the user has to go through Link (update mode) again
CONSENT_ERROR_CODES = frozenset({
    "ITEM_LOGIN_REQUIRED",
    "PENDING_EXPIRATION",
    "ADDITIONAL_CONSENT_REQUIRED",
    "INSUFFICIENT_CREDENTIALS",
    "ACCESS_NOT_GRANTED",
    "NO_ACCOUNTS",
    "INVALID_ACCESS_TOKEN",
})

MUTATION_DURING_PAGINATION = "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"


def parse_plaid_error(e: ApiException) -> Dict[str, Any]:
    """Extract error_type/error_code/error_message from a Plaid ApiException body."""
    body = getattr(e, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str) and body:
        try:
            parsed = json.loads(body)
            if isinstance(parsed, dict):
                return parsed
        except ValueError:
            pass
    return {}


def classify_api_exception(e: ApiException, operation: str) -> Exception:
    """Map a Plaid ApiException onto ConsentRequired or TransientSyncFailure."""
    error = parse_plaid_error(e)
    error_code = error.get("error_code")
    message = error.get("error_message") or str(e)
    status = getattr(e, "status", None)

    if error_code in CONSENT_ERROR_CODES:
        return ConsentRequired(f"{operation}: {message}", error_code=error_code)
    return TransientSyncFailure(
        f"{operation} failed (status={status}, code={error_code}): {message}",
        error_code=error_code,
    )


def _enum_value(value: Any) -> Optional[str]:
    # Plaid SDK returns enum-like objects for some string fields
    if value is None:
        return None
    if hasattr(value, "value"):
        return value.value
    return str(value)


class PlaidClient:
    """Client for interacting with Plaid API"""

    ENVIRONMENTS = {
        "sandbox": plaid.Environment.Sandbox,
        "production": plaid.Environment.Production,
    }

    def __init__(
        self,
        client_id: Optional[str] = None,
        secret: Optional[str] = None,
        environment: Optional[str] = None,
        request_timeout: Optional[float] = None,
        api: Optional[Any] = None,
    ):
        self.client_id = client_id or settings.PLAID_CLIENT_ID
        self.secret = secret or settings.PLAID_SECRET
        self.environment_name = (environment or settings.PLAID_ENVIRONMENT).lower()
        self.request_timeout = request_timeout or settings.PLAID_REQUEST_TIMEOUT
        self.country_codes = settings.plaid_country_codes_list

        if api is not None:
            self.client = api
        else:
            self.client = self._initialize_client()

    def _get_environment(self) -> str:
        """Map environment string to Plaid host, failing on anything unknown"""
        env_name = self.environment_name
        if env_name == "development":
            # Plaid retired the Development host; its keys work against Production
            env_name = "production"
        host = self.ENVIRONMENTS.get(env_name)
        if host is None:
            raise ConfigurationError(
                f"PLAID_ENVIRONMENT should either be set to `sandbox` or `production`, got {self.environment_name!r}"
            )
        return host

    def _initialize_client(self):
        """Initialize Plaid API client"""
        if not (self.client_id and self.secret):
            raise ConfigurationError("PLAID_CLIENT_ID and PLAID_SECRET must be set")

        configuration = plaid.Configuration(
            host=self._get_environment(),
            api_key={
                'clientId': self.client_id,
                'secret': self.secret,
            }
        )
        api_client = plaid.ApiClient(configuration)
        logger.info(f"Plaid client initialized with environment: {self.environment_name}")
        return plaid_api.PlaidApi(api_client)

    def sync_transactions(
        self,
        access_token: str,
        cursor: Optional[str] = None,
        count: int = 500
    ) -> Dict[str, Any]:
        """
        Fetch one page of transaction deltas

        Args:
            access_token: Plaid access token
            cursor: Cursor for incremental updates (None for initial sync)
            count: Number of transactions to fetch (max 500)

        Returns:
            Dictionary with added, modified, removed transactions and next cursor

        Raises:
            ConsentRequired: the item needs re-authorization
            TransientSyncFailure: any other API, network or timeout failure
        """
        request_args = {
            "access_token": access_token,
            "count": min(count, 500),
        }
        if cursor:
            request_args["cursor"] = cursor

        # Security: Access token never logged
        logger.debug(f"[PLAID SYNC] Requesting page, cursor: {cursor[:50] if cursor else 'None (initial sync)'}")

        try:
            request = TransactionsSyncRequest(**request_args)
            response = self.client.transactions_sync(request, _request_timeout=self.request_timeout)
            response = response.to_dict() if hasattr(response, "to_dict") else response

            added = response.get('added') or []
            modified = response.get('modified') or []
            removed = response.get('removed') or []

            # A malformed page fails the whole walk rather than half-applying
            formatted = {
                "added": [self._format_transaction(txn) for txn in added],
                "modified": [self._format_transaction(txn) for txn in modified],
                "removed": [self._format_removed_transaction(txn) for txn in removed],
                "next_cursor": response.get('next_cursor'),
                "has_more": bool(response.get('has_more', False)),
            }
        except ApiException as e:
            raise classify_api_exception(e, "transactions/sync") from e
        except Exception as e:
            raise TransientSyncFailure(f"transactions/sync failed: {e}") from e

        logger.info(
            f"[PLAID SYNC] Page: added={len(added)} modified={len(modified)} "
            f"removed={len(removed)} has_more={formatted['has_more']}"
        )

        return formatted

    def get_accounts(self, access_token: str) -> Dict[str, Any]:
        """
        Get accounts (with live balances) associated with an access token

        Args:
            access_token: Plaid access token

        Returns:
            Dictionary with accounts and item information
        """
        try:
            request = AccountsGetRequest(access_token=access_token)
            response = self.client.accounts_get(request, _request_timeout=self.request_timeout)
            response = response.to_dict() if hasattr(response, "to_dict") else response
            return {
                "accounts": [self._format_account(acc) for acc in response.get('accounts') or []],
                "item": response.get('item') or {},
            }
        except ApiException as e:
            raise classify_api_exception(e, "accounts/get") from e
        except Exception as e:
            raise TransientSyncFailure(f"accounts/get failed: {e}") from e

    def get_institution(self, institution_id: str) -> Dict[str, Any]:
        """
        Look up an institution by ID

        Args:
            institution_id: Plaid institution ID

        Returns:
            Dictionary with institution_id and name
        """
        try:
            request = InstitutionsGetByIdRequest(
                institution_id=institution_id,
                country_codes=[CountryCode(code) for code in self.country_codes],
            )
            response = self.client.institutions_get_by_id(request, _request_timeout=self.request_timeout)
            response = response.to_dict() if hasattr(response, "to_dict") else response
        except ApiException as e:
            raise classify_api_exception(e, "institutions/get_by_id") from e
        except Exception as e:
            raise TransientSyncFailure(f"institutions/get_by_id failed: {e}") from e

        institution = response.get('institution') or {}
        return {
            "institution_id": institution.get('institution_id', institution_id),
            "name": institution.get('name'),
        }

    def _format_account(self, account: Dict[str, Any]) -> Dict[str, Any]:
        """Format Plaid account object for our use"""
        balances = account.get('balances') or {}
        return {
            "account_id": account['account_id'],
            "name": account.get('name'),
            "official_name": account.get('official_name'),
            "mask": account.get('mask'),
            "type": _enum_value(account.get('type')),
            "subtype": _enum_value(account.get('subtype')),
            "balances": {
                "available": balances.get('available'),
                "current": balances.get('current'),
                "limit": balances.get('limit'),
                "currency": balances.get('iso_currency_code') or 'USD',
            }
        }

    def _format_transaction(self, transaction: Dict[str, Any]) -> ExternalTransaction:
        """Format Plaid transaction object for our use"""
        hierarchy = [c for c in (transaction.get('category') or []) if c]
        pfc = transaction.get('personal_finance_category') or {}
        return ExternalTransaction(
            transaction_id=transaction['transaction_id'],
            account_id=transaction['account_id'],
            name=transaction.get('name'),
            amount=transaction['amount'],
            date=transaction['date'],
            payment_channel=_enum_value(transaction.get('payment_channel')),
            category=raw_category_code(hierarchy, pfc.get('primary')),
            category_hierarchy=hierarchy,
            pending=bool(transaction.get('pending', False)),
            merchant_name=transaction.get('merchant_name'),
            logo_url=transaction.get('logo_url'),
            website=transaction.get('website'),
        )

    def _format_removed_transaction(self, removed: Dict[str, Any]) -> str:
        """Removed entries only carry the transaction ID"""
        return removed['transaction_id']


_default_client: Optional[PlaidClient] = None
_default_client_lock = threading.Lock()


def get_plaid_client() -> PlaidClient:
    """Process-wide client for job entry points; raises ConfigurationError if Plaid is not configured"""
    global _default_client
    with _default_client_lock:
        if _default_client is None:
            _default_client = PlaidClient()
        return _default_client
