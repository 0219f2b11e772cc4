"""queuescaler - queue-driven start/stop autoscaler for cloud compute units

Philosophy:
- Stateless cycles: desired state is re-derived from live queue depth every tick
- Idempotent actuation: Start/Stop may be repeated safely
- One unit's failure never blocks the others
- Fail safe: incomplete configuration means do nothing

Compute units are Azure container groups or Google Compute Engine VM
instances. An external scheduler invokes the triggers in
``queuescaler.triggers`` on fixed periods.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
