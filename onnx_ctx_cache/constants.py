"""Node type, domain and attribute keys of the EPContext node schema."""

from __future__ import annotations

EPCONTEXT_OP = "EPContext"
MS_DOMAIN = "com.microsoft"

# Attribute keys
EMBED_MODE = "embed_mode"
CACHE_PAYLOAD = "cache_payload"
IS_MAIN = "is_main"
MAX_SCRATCH_SIZE = "max_scratch_size"
SDK_VERSION = "sdk_version"
PARTITION_NAME = "partition_name"
SOURCE_TAG = "source_tag"

# Backend family
BACKEND_TAG = "QNNExecutionProvider"
ACCEPTED_SOURCE_TAGS = frozenset({"qnnexecutionprovider", "qnn"})

CONTEXT_BIN_SUFFIX = ".bin"
