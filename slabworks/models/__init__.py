from .blocks import Block
from .production import Machine, Trolley, ProductionJob
from .inventory import Stand, FinishedGood, Shipment

__all__ = [
    'Block',
    'Machine', 'Trolley', 'ProductionJob',
    'Stand', 'FinishedGood', 'Shipment',
]
