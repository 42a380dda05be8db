from django.dispatch import Signal

# Sent once the transition has been committed.
# kwargs: order, from_state, to_state, action, actor_id, log_id
workflow_transitioned = Signal()
