from .base import ActionDraft, ActionSourceAdapter
from .dnd5e import Dnd5eChatAdapter, Sw5eChatAdapter, MidiQolWorkflowAdapter
from .wfrp4e import Wfrp4eTestAdapter
from .generic import GenericAdapter

__all__ = [
    'ActionDraft',
    'ActionSourceAdapter',
    'Dnd5eChatAdapter',
    'Sw5eChatAdapter',
    'MidiQolWorkflowAdapter',
    'Wfrp4eTestAdapter',
    'GenericAdapter',
]
