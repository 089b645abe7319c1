"""Building blocks for a forwarding DNS proxy: upstream routing, load balancing,
ECS, rate limiting, recursion detection, reverse DNS names and DoH parsing."""

__version__ = "0.1.0"