from .entity import ModelEntity
from .flag_definition import FlagDefinition
from .segment_membership import SegmentMembership
