from . import cache, mount, profile, start

__all__ = ['cache', 'mount', 'profile', 'start']
