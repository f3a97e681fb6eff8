from src.enrichment.anonymize import anonymize_ip, default_secret_in_use
from src.enrichment.request_meta import RequestMeta, resolve_client_ip
from src.enrichment.useragent import (
    UAClassification,
    classify,
    detect_browser,
    detect_device,
    detect_os,
)
