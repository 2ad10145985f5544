from typing import Iterable, Optional, Set

from flagsync.impl.model.entity import *

STATUS_ACTIVE = 'ACTIVE'
STATUS_ARCHIVED = 'ARCHIVED'

SEGMENT_MATCHER = 'IN_SEGMENT'


class FlagDefinition(ModelEntity):
    __slots__ = ['_status', '_killed', '_default_treatment', '_segment_names']

    def __init__(self, data: dict):
        super().__init__(data)
        self._status = opt_str(data, 'status') or STATUS_ACTIVE
        self._killed = opt_bool(data, 'killed')
        self._default_treatment = opt_str(data, 'defaultTreatment')
        self._segment_names = frozenset(_segment_references(opt_dict_list(data, 'conditions')))

    @property
    def status(self) -> str:
        return self._status

    @property
    def archived(self) -> bool:
        return self._status == STATUS_ARCHIVED

    @property
    def killed(self) -> bool:
        return self._killed

    @property
    def default_treatment(self) -> Optional[str]:
        return self._default_treatment

    @property
    def segment_names(self) -> Set[str]:
        """Names of the segments referenced by this flag's conditions."""
        return self._segment_names

    def with_kill(self, default_treatment: str, change_number: int) -> 'FlagDefinition':
        """
        Returns a copy of this flag marked as killed. Entities are never modified in place, so a
        reader holding the previous instance keeps a consistent view.
        """
        data = dict(self._data)
        data['killed'] = True
        data['defaultTreatment'] = default_treatment
        data['changeNumber'] = change_number
        return FlagDefinition(data)


def _segment_references(conditions: list) -> Iterable[str]:
    for condition in conditions:
        for matcher in opt_dict_list(condition, 'matchers'):
            name = opt_str(matcher, 'segmentName')
            if name is not None and opt_str(matcher, 'matcherType') in (None, SEGMENT_MATCHER):
                yield name
