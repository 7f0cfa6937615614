from typing import Any, Callable, Iterable, List, Optional
import os
from joblib import Parallel, delayed
import warnings
try:
    import joblib.externals.loky.reusable_executor as reusable_executor
except ImportError:
    reusable_executor = None

def parallelize(
        fn: Callable[..., Any],
        list_of_args: Iterable[tuple],
        chunk_size: int = 1,
        n_jobs: Optional[int] = None
) -> List[Any]:
    list_of_args = list(list_of_args)
    if n_jobs == 1 or len(list_of_args) <= 1:
        return [fn(*args) for args in list_of_args]

    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=UserWarning, module="joblib") 
        if n_jobs == None:
            n_jobs = max(os.cpu_count() // 2, 1)
        
        with Parallel(
            n_jobs=n_jobs,
            batch_size=chunk_size,
            prefer="processes"
        ) as parallel:
            result = parallel(delayed(fn)(*args) for args in list_of_args)

    if reusable_executor:
        executor = reusable_executor.get_reusable_executor()
        executor.shutdown(wait=True, kill_workers=True)

    return result
