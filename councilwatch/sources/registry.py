from councilwatch.sources.comox import Comox
from councilwatch.sources.courtenay import CourtenayHighlights
from councilwatch.sources.cumberland import Cumberland
from councilwatch.sources.cvrd import CvrdBoard

# Order matters for "all": the pipeline scrapes in this order.
SOURCES = {
    "courtenay": CourtenayHighlights,
    "comox": Comox,
    "cumberland": Cumberland,
    "cvrd": CvrdBoard,
}


def get_adapter(name, fetcher=None):
    try:
        adapter_cls = SOURCES[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown source '{name}'. Choose from: {', '.join(SOURCES)}") from None
    return adapter_cls(fetcher=fetcher)
