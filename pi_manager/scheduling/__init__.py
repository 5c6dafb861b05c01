"""
Periodic sampling schedule management for Pi Manager.
"""
from pi_manager.scheduling.reconciler import ScheduleReconciler, compute_desired_unit_definition

__all__ = [
    'ScheduleReconciler',
    'compute_desired_unit_definition'
]
