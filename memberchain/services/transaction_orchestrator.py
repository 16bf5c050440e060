"""
Transaction Orchestrator.

Drives the two paid state transitions of a membership:
- registration: plan 1 only, from an unregistered wallet
- upgrade: exactly current plan + 1, from a registered wallet

Preconditions are checked locally, in order, before anything is sent:
transition legality, token balance, token allowance. Expected failures are
returned as typed results; nothing here raises into presentation code.
The orchestrator never waits for confirmation, that is the event sync
engine's job.

State machine per action:
    Unsubmitted -> PreconditionChecked -> Submitted -> {Confirmed | Failed}
                                       -> ApprovalRequired
"""

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import ClassVar

from eth_utils import is_address, to_checksum_address
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from web3 import Web3
from web3.contract.contract import ContractFunction
from web3.exceptions import ContractLogicError, Web3Exception

from memberchain.config.constants import MAX_PLAN_ID, REGISTRATION_PLAN_ID
from memberchain.models.pending_action import PendingActionType
from memberchain.services.blockchain.chain_client import ChainClient
from memberchain.services.blockchain.contract_manager import ContractManager
from memberchain.services.blockchain.exceptions import BlockchainError
from memberchain.services.blockchain.types import ZERO_ADDRESS
from memberchain.services.ledger import Ledger
from memberchain.services.query_service import QueryService
from memberchain.utils.security import mask_address, mask_tx_hash


class ActionState(StrEnum):
    """Lifecycle of a paid action (logged on every transition)."""

    UNSUBMITTED = "unsubmitted"
    PRECONDITION_CHECKED = "precondition_checked"
    SUBMITTED = "submitted"
    APPROVAL_REQUIRED = "approval_required"
    REJECTED = "rejected"


class RejectionCode:
    """Rejection reason codes."""

    INVALID_ADDRESS = "invalid_address"
    INVALID_PLAN = "invalid_plan"
    ILLEGAL_TRANSITION = "illegal_transition"
    ALREADY_REGISTERED = "already_registered"
    NOT_REGISTERED = "not_registered"
    PLAN_UNAVAILABLE = "plan_unavailable"
    PLAN_INACTIVE = "plan_inactive"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    SIGNER_NOT_CONFIGURED = "signer_not_configured"
    CONTRACT_REVERT = "contract_revert"
    CHAIN_ERROR = "chain_error"


@dataclass(frozen=True)
class Submitted:
    """Transaction was broadcast; confirmation arrives via events."""

    status: ClassVar[str] = "submitted"

    tx_id: str
    action_type: str
    plan_id: int
    amount: int


@dataclass(frozen=True)
class ApprovalRequired:
    """Allowance is below the required amount; no transaction was sent."""

    status: ClassVar[str] = "approval_required"

    amount: int
    amount_display: Decimal
    spender: str


@dataclass(frozen=True)
class Rejected:
    """Action refused locally or by the chain."""

    status: ClassVar[str] = "rejected"

    reason: str
    code: str


TransactionResult = Submitted | ApprovalRequired | Rejected


class TransactionOrchestrator:
    """
    Submits registration and upgrade transactions.

    Usage:
        result = await orchestrator.register(1, wallet)
        match result:
            case Submitted(tx_id=tx_id): ...
            case ApprovalRequired(amount=amount): ...
            case Rejected(reason=reason): ...
    """

    def __init__(
        self,
        chain: ChainClient,
        contracts: ContractManager,
        query: QueryService,
        ledger: Ledger,
        default_upline: str,
        max_plan_id: int = MAX_PLAN_ID,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            chain: Chain client used for gas estimation and submission
            contracts: Contract bindings
            query: Query service for member/plan/balance reads
            ledger: Store for pending actions
            default_upline: Upline used when registration gives none
            max_plan_id: Highest plan id accepted
        """
        self.chain = chain
        self.contracts = contracts
        self.query = query
        self.ledger = ledger
        self.default_upline = to_checksum_address(default_upline)
        self.max_plan_id = max_plan_id
        self.logger = logger.bind(service="TransactionOrchestrator")

    async def register(
        self,
        plan_id: int,
        wallet: str,
        upline: str | None = None,
    ) -> TransactionResult:
        """
        Register an unregistered wallet on plan 1.

        Args:
            plan_id: Target plan (must be 1)
            wallet: Member wallet paying for the plan
            upline: Referrer address (defaults to the owner wallet)

        Returns:
            Submitted, ApprovalRequired or Rejected
        """
        action = PendingActionType.REGISTER.value
        self._log_state(action, wallet, plan_id, ActionState.UNSUBMITTED)

        if not is_address(wallet):
            return self._reject(action, wallet, plan_id, RejectionCode.INVALID_ADDRESS, "Invalid wallet address")
        if upline is not None and not is_address(upline):
            return self._reject(action, wallet, plan_id, RejectionCode.INVALID_ADDRESS, "Invalid upline address")
        if plan_id != REGISTRATION_PLAN_ID:
            return self._reject(
                action, wallet, plan_id, RejectionCode.ILLEGAL_TRANSITION,
                f"Registration must target plan {REGISTRATION_PLAN_ID}",
            )

        member = await self.query.get_member_info(wallet)
        if member is None:
            return self._reject(action, wallet, plan_id, RejectionCode.CHAIN_ERROR, "Member info unavailable")
        if member.is_registered:
            return self._reject(action, wallet, plan_id, RejectionCode.ALREADY_REGISTERED, "Wallet is already registered")

        plan = await self.query.get_plan_info(plan_id)
        if plan is None:
            return self._reject(action, wallet, plan_id, RejectionCode.PLAN_UNAVAILABLE, f"Plan {plan_id} not found")
        if not plan.is_active:
            return self._reject(action, wallet, plan_id, RejectionCode.PLAN_INACTIVE, f"Plan {plan_id} is not active")

        if upline and upline.lower() != ZERO_ADDRESS:
            upline_address = to_checksum_address(upline)
        else:
            upline_address = self.default_upline

        return await self._check_funds_and_submit(
            action=action,
            wallet=wallet,
            from_plan_id=0,
            to_plan_id=plan_id,
            amount=plan.price,
            build_fn=lambda w3: self.contracts.membership(w3).functions.registerMember(
                plan_id, upline_address
            ),
        )

    async def upgrade(self, plan_id: int, wallet: str) -> TransactionResult:
        """
        Upgrade a registered wallet to the next plan.

        The amount due is the price difference between the target plan
        and the member's current plan.

        Args:
            plan_id: Target plan (must be current plan + 1)
            wallet: Member wallet

        Returns:
            Submitted, ApprovalRequired or Rejected
        """
        action = PendingActionType.UPGRADE.value
        self._log_state(action, wallet, plan_id, ActionState.UNSUBMITTED)

        if not is_address(wallet):
            return self._reject(action, wallet, plan_id, RejectionCode.INVALID_ADDRESS, "Invalid wallet address")
        if plan_id <= REGISTRATION_PLAN_ID or plan_id > self.max_plan_id:
            return self._reject(
                action, wallet, plan_id, RejectionCode.INVALID_PLAN,
                f"Upgrade target must be between {REGISTRATION_PLAN_ID + 1} and {self.max_plan_id}",
            )

        member = await self.query.get_member_info(wallet)
        if member is None:
            return self._reject(action, wallet, plan_id, RejectionCode.CHAIN_ERROR, "Member info unavailable")
        if not member.is_registered:
            return self._reject(action, wallet, plan_id, RejectionCode.NOT_REGISTERED, "Wallet is not registered")
        if plan_id != member.plan_id + 1:
            return self._reject(
                action, wallet, plan_id, RejectionCode.ILLEGAL_TRANSITION,
                f"Can only upgrade to the next plan level ({member.plan_id + 1})",
            )

        plan_count = await self.query.get_total_plan_count()
        if plan_count is not None and plan_id > plan_count:
            return self._reject(action, wallet, plan_id, RejectionCode.INVALID_PLAN, f"Plan {plan_id} does not exist")

        current_plan = await self.query.get_plan_info(member.plan_id)
        new_plan = await self.query.get_plan_info(plan_id)
        if current_plan is None or new_plan is None:
            return self._reject(action, wallet, plan_id, RejectionCode.PLAN_UNAVAILABLE, "Plan information not available")
        if not new_plan.is_active:
            return self._reject(action, wallet, plan_id, RejectionCode.PLAN_INACTIVE, f"Plan {plan_id} is not active")

        return await self._check_funds_and_submit(
            action=action,
            wallet=wallet,
            from_plan_id=member.plan_id,
            to_plan_id=plan_id,
            amount=max(new_plan.price - current_plan.price, 0),
            build_fn=lambda w3: self.contracts.membership(w3).functions.upgradePlan(plan_id),
        )

    async def _check_funds_and_submit(
        self,
        action: str,
        wallet: str,
        from_plan_id: int,
        to_plan_id: int,
        amount: int,
        build_fn: Callable[[Web3], ContractFunction],
    ) -> TransactionResult:
        """Balance and allowance checks, then gas estimate, submit and record."""
        balance = await self.query.get_token_balance(wallet)
        if balance is None:
            return self._reject(action, wallet, to_plan_id, RejectionCode.CHAIN_ERROR, "Token balance unavailable")
        if balance < amount:
            required = await self.query.get_display_amount(amount)
            return self._reject(
                action, wallet, to_plan_id, RejectionCode.INSUFFICIENT_BALANCE,
                f"Insufficient token balance. Required: {required}",
            )

        allowance = await self.query.get_allowance(wallet)
        if allowance is None:
            return self._reject(action, wallet, to_plan_id, RejectionCode.CHAIN_ERROR, "Token allowance unavailable")
        if allowance < amount:
            self._log_state(action, wallet, to_plan_id, ActionState.APPROVAL_REQUIRED)
            return ApprovalRequired(
                amount=amount,
                amount_display=await self.query.get_display_amount(amount),
                spender=self.contracts.membership_address,
            )

        self._log_state(action, wallet, to_plan_id, ActionState.PRECONDITION_CHECKED)

        if self.chain.signer_address is None:
            return self._reject(
                action, wallet, to_plan_id, RejectionCode.SIGNER_NOT_CONFIGURED,
                "Signing credential is not configured",
            )

        try:
            gas_limit = await self.chain.estimate_gas_limit(build_fn, operation_name=f"{action}_estimate_gas")
            gas_price = await self.chain.get_gas_price()
            tx_id = await self.chain.send_contract_transaction(
                build_fn, gas_limit=gas_limit, gas_price=gas_price, operation_name=action
            )
        except ContractLogicError as e:
            return self._reject(action, wallet, to_plan_id, RejectionCode.CONTRACT_REVERT, f"Contract rejected call: {e}")
        except (BlockchainError, Web3Exception, ValueError) as e:
            self.logger.error(f"[{action}] Submission failed for {mask_address(wallet)}: {e}")
            return self._reject(action, wallet, to_plan_id, RejectionCode.CHAIN_ERROR, "Blockchain temporarily unavailable")

        try:
            await self.ledger.record_pending_action(
                tx_hash=tx_id,
                wallet_address=wallet,
                action_type=action,
                from_plan_id=from_plan_id,
                to_plan_id=to_plan_id,
                amount=amount,
            )
        except SQLAlchemyError as e:
            # The transaction is already broadcast; the event will still be recorded
            self.logger.error(
                f"[{action}] Failed to record pending action {mask_tx_hash(tx_id)}: {e}"
            )

        self._log_state(action, wallet, to_plan_id, ActionState.SUBMITTED, tx_id)
        return Submitted(tx_id=tx_id, action_type=action, plan_id=to_plan_id, amount=amount)

    def _reject(
        self, action: str, wallet: str, plan_id: int, code: str, reason: str
    ) -> Rejected:
        self.logger.info(
            f"[{action}] {ActionState.REJECTED} plan={plan_id} "
            f"wallet={mask_address(wallet)}: {code} ({reason})"
        )
        return Rejected(reason=reason, code=code)

    def _log_state(
        self,
        action: str,
        wallet: str,
        plan_id: int,
        state: ActionState,
        tx_id: str | None = None,
    ) -> None:
        suffix = f" tx={mask_tx_hash(tx_id)}" if tx_id else ""
        self.logger.info(
            f"[{action}] {state} plan={plan_id} wallet={mask_address(wallet)}{suffix}"
        )
