from .offline import offline_cached, with_offline

__all__ = ["offline_cached", "with_offline"]
