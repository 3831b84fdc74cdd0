from .alert_worker import AlertWorker
from .digest_worker import DigestRunResult, DigestWorker

__all__ = ['AlertWorker', 'DigestWorker', 'DigestRunResult']
