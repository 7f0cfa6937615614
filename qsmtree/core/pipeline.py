# SmartQSM TreeTools - project-lightlin.github.io
# 
# Copyright (C) 2025-, YANG Jie <nj_yang_jie@foxmail.com>
# All rights reserved.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or 
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
# 
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

import logging
from typing import Any, Callable, Generator, List, Optional

logger = logging.getLogger(__name__)

Stage = Callable[[], Optional[str]]

class Pipeline:
    """Ordered stages chosen by ``set_params`` and executed by ``run``.

    A stage takes no arguments, works on state held by the subclass and
    returns a progress message or None. ``run`` is a generator: it yields the
    stage messages and returns the result through ``StopIteration``.
    """
    _pipeline: List[Stage]
    _verbose: bool

    def __init__(self, verbose: bool = False) -> None:
        self._verbose = verbose
        self._pipeline = []
        return

    def _add_fns_to_pipeline(self, id: int, fns: List[Stage]) -> None:
        if id < 0:
            raise IndexError(f"Negative index {id} is not supported to prevent ambiguity.")
        id = min(id, len(self._pipeline))
        self._pipeline[id:id] = fns
        return

    def _clear_pipeline(self) -> None:
        self._pipeline.clear()
        return

    def __len__(self) -> int:
        return len(self._pipeline)

    @property
    def stage_names(self) -> List[str]:
        return [fn.__name__.lstrip("_") for fn in self._pipeline]

    def _run_pipeline(self) -> Generator[Optional[str], None, None]:
        if len(self._pipeline) == 0:
            raise ValueError(f"{type(self).__name__} has no stages, call set_params before run.")
        num_stages: int = len(self._pipeline)
        for id, (fn, name) in enumerate(zip(list(self._pipeline), self.stage_names)):
            if self._verbose:
                logger.info(f"Stage {id + 1}/{num_stages}: {name}")
            yield fn()
        return

    def run(self, *args, **kwargs) -> Generator[Optional[str], None, Any]:
        raise NotImplementedError

    def set_params(self, **kwargs) -> None:
        raise NotImplementedError

def run_to_completion(generator: Generator[Optional[str], None, Any]) -> Any:
    """Drain a pipeline run, logging each stage message, and return its result."""
    while True:
        try:
            message: Optional[str] = next(generator)
        except StopIteration as e:
            return e.value
        if message is not None:
            logger.info(message)
