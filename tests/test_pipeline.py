"""
Tests for the staged pipeline base.
"""

import logging

import pytest

from qsmtree.core.pipeline import Pipeline, run_to_completion


class Doubler(Pipeline):
    _value: int

    def set_params(self, times: int = 1, announce: bool = True) -> None:
        self._clear_pipeline()
        self._add_fns_to_pipeline(0, [self._double] * times)
        if announce:
            self._add_fns_to_pipeline(len(self), [self._announce])
        return

    def _double(self) -> str:
        self._value *= 2
        return f"Doubled to {self._value}"

    def _announce(self) -> None:
        return None

    def run(self, value: int):
        self._value = value
        yield from self._run_pipeline()
        return self._value


class TestPipeline:
    """Tests for Pipeline."""

    def test_base_is_abstract(self) -> None:
        pipeline = Pipeline()

        with pytest.raises(NotImplementedError):
            pipeline.set_params()
        with pytest.raises(NotImplementedError):
            pipeline.run()

    def test_stages(self) -> None:
        doubler = Doubler()
        doubler.set_params(times=3)

        assert len(doubler) == 4
        assert doubler.stage_names == ["double", "double", "double", "announce"]
        assert run_to_completion(doubler.run(1)) == 8

    def test_reconfigure(self) -> None:
        doubler = Doubler()
        doubler.set_params(times=3)
        doubler.set_params(times=1, announce=False)

        assert doubler.stage_names == ["double"]

    def test_unconfigured_run_raises(self) -> None:
        with pytest.raises(ValueError):
            next(Doubler().run(1))

    def test_insert_order(self) -> None:
        pipeline = Pipeline()
        first, second, third = (lambda: "1"), (lambda: "2"), (lambda: "3")
        pipeline._add_fns_to_pipeline(0, [first, third])
        pipeline._add_fns_to_pipeline(1, [second])
        pipeline._add_fns_to_pipeline(10, [first])

        assert pipeline._pipeline == [first, second, third, first]

    def test_negative_index(self) -> None:
        with pytest.raises(IndexError):
            Pipeline()._add_fns_to_pipeline(-1, [lambda: None])

    def test_messages_logged(self, caplog) -> None:
        doubler = Doubler()
        doubler.set_params(times=2)

        with caplog.at_level(logging.INFO, logger="qsmtree.core.pipeline"):
            run_to_completion(doubler.run(3))

        assert "Doubled to 6" in caplog.text
        assert "Doubled to 12" in caplog.text
        assert "Stage 1/3" not in caplog.text

    def test_verbose_logs_stages(self, caplog) -> None:
        doubler = Doubler(verbose=True)
        doubler.set_params(times=2)

        with caplog.at_level(logging.INFO, logger="qsmtree.core.pipeline"):
            run_to_completion(doubler.run(3))

        assert "Stage 1/3: double" in caplog.text
        assert "Stage 3/3: announce" in caplog.text
