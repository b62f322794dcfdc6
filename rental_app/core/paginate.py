import math

from pydantic import BaseModel


class PaginatePage:
    def clamp(self, page: int | None, per_page: int | None, default: int = 10, ceiling: int = 100):
        page = page if page and page > 0 else 1
        per_page = per_page if per_page and per_page > 0 else default
        return page, min(per_page, ceiling)

    def meta(self, page: int, per_page: int, total: int) -> dict:
        total_pages = math.ceil(total / per_page) if per_page else 0
        return {
            "current_page": page,
            "total_pages": total_pages,
            "total": total,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        }

    def get_list_json_dumps(self, items):
        return [p.model_dump(mode="json") for p in items]

    def get_single_json_dumps(self, item: BaseModel):
        return item.model_dump(mode="json")
