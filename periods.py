from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


def month_period(today: date) -> Period:
    first = today.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    end_this = next_month - date.resolution
    return Period("this_month", first, end_this)


def year_period(today: date) -> Period:
    return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))
