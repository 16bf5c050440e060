"""
Contract ABIs.

Only the functions and events the chain access layer calls are listed:
- Membership NFT contract (reads, register/upgrade writes, events)
- Payment token (ERC-20 balance, allowance, decimals)
"""

MEMBERSHIP_ABI = [
    # Reads
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "members",
        "outputs": [
            {"name": "upline", "type": "address"},
            {"name": "totalReferrals", "type": "uint256"},
            {"name": "totalEarnings", "type": "uint256"},
            {"name": "planId", "type": "uint256"},
            {"name": "cycleNumber", "type": "uint256"},
            {"name": "registeredAt", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "_planId", "type": "uint256"}],
        "name": "getPlanInfo",
        "outputs": [
            {"name": "price", "type": "uint256"},
            {"name": "name", "type": "string"},
            {"name": "membersPerCycle", "type": "uint256"},
            {"name": "isActive", "type": "bool"},
            {"name": "imageURI", "type": "string"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "_planId", "type": "uint256"}],
        "name": "getPlanCycleInfo",
        "outputs": [
            {"name": "currentCycle", "type": "uint256"},
            {"name": "membersInCurrentCycle", "type": "uint256"},
            {"name": "membersPerCycle", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getSystemStats",
        "outputs": [
            {"name": "totalMembers", "type": "uint256"},
            {"name": "totalRevenue", "type": "uint256"},
            {"name": "totalCommission", "type": "uint256"},
            {"name": "ownerFunds", "type": "uint256"},
            {"name": "feeFunds", "type": "uint256"},
            {"name": "fundFunds", "type": "uint256"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getTotalPlanCount",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    # Writes
    {
        "inputs": [
            {"name": "_planId", "type": "uint256"},
            {"name": "_upline", "type": "address"},
        ],
        "name": "registerMember",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "_newPlanId", "type": "uint256"}],
        "name": "upgradePlan",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    # Events
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "member", "type": "address"},
            {"indexed": True, "name": "upline", "type": "address"},
            {"indexed": False, "name": "planId", "type": "uint256"},
            {"indexed": False, "name": "cycleNumber", "type": "uint256"},
        ],
        "name": "MemberRegistered",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "member", "type": "address"},
            {"indexed": False, "name": "oldPlanId", "type": "uint256"},
            {"indexed": False, "name": "newPlanId", "type": "uint256"},
            {"indexed": False, "name": "cycleNumber", "type": "uint256"},
        ],
        "name": "PlanUpgraded",
        "type": "event",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "amount", "type": "uint256"},
        ],
        "name": "ReferralPaid",
        "type": "event",
    },
]

# Payment token (ERC-20)
TOKEN_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"},
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
]

# Events tracked by the sync engine, in filter query order
TRACKED_EVENTS = ("MemberRegistered", "PlanUpgraded", "ReferralPaid")
