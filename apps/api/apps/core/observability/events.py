"""
Domain events logging helpers.

Provides structured event logging for business operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'flow_transition', 'lab_batch_operation')
        entity_type: Type of entity (e.g., 'PatientFlowState', 'LabOrder')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, blocked, partial, etc.)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'lab_batch_operation',
            entity_type='LabOrder',
            entity_ids={'clinic_id': str(clinic.id)},
            result='partial',
            operation='SUBMIT',
            successful=3,
            skipped=1
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'rejected', 'partial']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_flow_transition(flow, from_stage, to_stage, result='success', **extra):
    """Log patient flow stage transition."""
    log_domain_event(
        'flow_transition',
        entity_type='PatientFlowState',
        entity_id=str(flow.id),
        entity_ids={
            'appointment_id': str(flow.appointment_id),
            'clinic_id': str(flow.clinic_id),
        },
        result=result,
        from_stage=from_stage,
        to_stage=to_stage,
        **extra
    )


def log_appointment_transition(appointment, from_status, to_status, result='success', **extra):
    """Log appointment status transition."""
    log_domain_event(
        'appointment_transition',
        entity_type='Appointment',
        entity_id=str(appointment.id),
        entity_ids={'clinic_id': str(appointment.clinic_id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_lab_status_change(order, from_status, to_status, source, **extra):
    """Log lab order status change (mirrors the status log row)."""
    log_domain_event(
        'lab_order_status_changed',
        entity_type='LabOrder',
        entity_id=str(order.id),
        entity_ids={'clinic_id': str(order.clinic_id)},
        result='success',
        order_number=order.order_number,
        from_status=from_status,
        to_status=to_status,
        source=source,
        **extra
    )


def log_lab_batch(clinic, operation, result, **counts):
    """Log a lab batch operation summary."""
    log_domain_event(
        'lab_batch_operation',
        entity_type='LabOrder',
        entity_ids={'clinic_id': str(clinic.id)},
        result=result,
        operation=operation,
        **counts
    )


def log_remake_decision(remake, approved, **extra):
    """Log remake approval or denial."""
    log_domain_event(
        'lab_remake_decision',
        entity_type='RemakeRequest',
        entity_id=str(remake.id),
        entity_ids={
            'clinic_id': str(remake.clinic_id),
            'original_order_id': str(remake.original_order_id),
        },
        result='success',
        decision='approved' if approved else 'denied',
        **extra
    )


def log_staff_termination(staff, result='success', **extra):
    """Log staff termination attempt."""
    log_domain_event(
        'staff_terminated' if result == 'success' else 'staff_termination_blocked',
        entity_type='StaffProfile',
        entity_id=str(staff.id),
        entity_ids={'clinic_id': str(staff.clinic_id)},
        result=result,
        **extra
    )


def log_content_delivery(delivery, result='success', **extra):
    """Log patient content delivery outcome."""
    log_domain_event(
        'content_delivered' if result == 'success' else 'content_delivery_failed',
        entity_type='ContentDelivery',
        entity_id=str(delivery.id),
        entity_ids={
            'clinic_id': str(delivery.clinic_id),
            'article_id': str(delivery.article_id),
            'patient_id': str(delivery.patient_id),
        },
        result=result,
        method=delivery.method,
        trigger=delivery.trigger,
        **extra
    )
