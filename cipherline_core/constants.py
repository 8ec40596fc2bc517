# cipherline_core/constants.py

# --------- RSA / PEM ----------
RSA_PUBLIC_EXPONENT = 65537
DEFAULT_KEY_SIZE = 2048
LEGACY_KEY_SIZE = 1024
SUPPORTED_KEY_SIZES = (DEFAULT_KEY_SIZE, LEGACY_KEY_SIZE)

TAG_PUBLIC = "public"
TAG_PRIVATE = "private"
PEM_LABELS = {
    TAG_PUBLIC: "PUBLIC KEY",
    TAG_PRIVATE: "PRIVATE KEY",
}

# OAEP with SHA-256: 2 * 32 byte digest + 2
OAEP_SHA256_OVERHEAD = 66

# --------- Network ----------
DEFAULT_TIMEOUT_S = 15.0
RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_S = 1.0
RETRY_MULTIPLIER = 2.0

# --------- KeyStore ----------
KEY_CACHE_SIZE = 256

# --------- Messages ----------
ORIGIN_REMOTE = "remote"
ORIGIN_LOCAL = "local"

# --------- Notarization ----------
NOTARY_STATUS_SENT = "sent"
NOTARY_CHANNEL = "cipherlinechannel"
NOTARY_CHAINCODE = "cipherlinecc"
NOTARY_ENRICH_WORKERS = 8
NOTARY_ENRICH_DEADLINE_S = 5.0

# --------- Session events ----------
EVENT_INITIAL_SESSION = "INITIAL_SESSION"
EVENT_SIGNED_IN = "SIGNED_IN"
EVENT_TOKEN_REFRESHED = "TOKEN_REFRESHED"
EVENT_USER_UPDATED = "USER_UPDATED"
EVENT_SIGNED_OUT = "SIGNED_OUT"
