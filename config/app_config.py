import os
from dotenv import load_dotenv

load_dotenv()

# Platform Fees
PLATFORM_FEE_PERCENT = int(os.getenv("PLATFORM_FEE_PERCENT", 10))

# Currency tag passed through to transactions and transfers
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "KES")

# Campaign sizing
MAX_INFLUENCERS_LIMIT = int(os.getenv("MAX_INFLUENCERS_LIMIT", 3))

# Only accepted proposals may mark completion and count toward the threshold
COMPLETION_REQUIRES_ACCEPTED = os.getenv("COMPLETION_REQUIRES_ACCEPTED", "true").lower() in ("1", "true", "yes")

# Dispute evidence/message log cap (entries per log)
DISPUTE_LOG_LIMIT = int(os.getenv("DISPUTE_LOG_LIMIT", 200))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
