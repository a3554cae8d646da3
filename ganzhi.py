"""
干支历法核心模块 - 公历转农历，推算年/月/日/时四柱。

Table-driven lunisolar conversion (1901-2050) plus the classic century
formula for the day pillar. Month pillars are split by the twelve "jie"
solar terms at day-level precision.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import NamedTuple, Optional


class UnsupportedDate(ValueError):
    """The civil date cannot be placed by the lunar tables."""


# 天干 / 地支
STEMS = ("甲", "乙", "丙", "丁", "戊", "己", "庚", "辛", "壬", "癸")
BRANCHES = ("子", "丑", "寅", "卯", "辰", "巳", "午", "未", "申", "酉", "戌", "亥")

START_YEAR = 1901
# 公历 1901-02-19 即农历 1901 年正月初一
EPOCH = datetime(START_YEAR, 1, 1)
EPOCH_TO_NEW_YEAR_DAYS = 49

# 每年一个 16 位字：从高位起每位表示该月大(30)小(29)，闰月紧随其正月份之后
LUNAR_MONTH_DAYS = (
    0x4ae0, 0xa570, 0x5268, 0xd260, 0xd950, 0x6aa8, 0x56a0, 0x9ad0, 0x4ae8, 0x4ae0,  # 1910
    0xa4d8, 0xa4d0, 0xd250, 0xd548, 0xb550, 0x56a0, 0x96d0, 0x95b0, 0x49b8, 0x49b0,  # 1920
    0xa4b0, 0xb258, 0x6a50, 0x6d40, 0xada8, 0x2b60, 0x9570, 0x4978, 0x4970, 0x64b0,  # 1930
    0xd4a0, 0xea50, 0x6d48, 0x5ad0, 0x2b60, 0x9370, 0x92e0, 0xc968, 0xc950, 0xd4a0,  # 1940
    0xda50, 0xb550, 0x56a0, 0xaad8, 0x25d0, 0x92d0, 0xc958, 0xa950, 0xb4a8, 0x6ca0,  # 1950
    0xb550, 0x55a8, 0x4da0, 0xa5b0, 0x52b8, 0x52b0, 0xa950, 0xe950, 0x6aa0, 0xad50,  # 1960
    0xab50, 0x4b60, 0xa570, 0xa570, 0x5260, 0xe930, 0xd950, 0x5aa8, 0x56a0, 0x96d0,  # 1970
    0x4ae8, 0x4ad0, 0xa4d0, 0xd268, 0xd250, 0xd528, 0xb540, 0xb6a0, 0x96d0, 0x95b0,  # 1980
    0x49b0, 0xa4b8, 0xa4b0, 0xb258, 0x6a50, 0x6d40, 0xada0, 0xab60, 0x9370, 0x4978,  # 1990
    0x4970, 0x64b0, 0x6a50, 0xea50, 0x6b28, 0x5ac0, 0xab60, 0x9368, 0x92e0, 0xc960,  # 2000
    0xd4a8, 0xd4a0, 0xda50, 0x5aa8, 0x56a0, 0xaad8, 0x25d0, 0x92d0, 0xc958, 0xa950,  # 2010
    0xb4a0, 0xb550, 0xb550, 0x55a8, 0x4ba0, 0xa5b0, 0x52b8, 0x52b0, 0xa930, 0x74a8,  # 2020
    0x6aa0, 0xad50, 0x4da8, 0x4b60, 0x9570, 0xa4e0, 0xd260, 0xe930, 0xd530, 0x5aa0,  # 2030
    0x6b50, 0x96d0, 0x4ae8, 0x4ad0, 0xa4d0, 0xd258, 0xd250, 0xd520, 0xdaa0, 0xb5a0,  # 2040
    0x56d0, 0x4ad8, 0x49b0, 0xa4b8, 0xa4b0, 0xaa50, 0xb528, 0x6d20, 0xada0, 0x55b0,  # 2050
)

# 闰月：每字节两年，高 4 位为前一年，低 4 位为后一年，0 表示无闰月
LEAP_MONTHS = (
    0x00, 0x50, 0x04, 0x00, 0x20,  # 1910
    0x60, 0x05, 0x00, 0x20, 0x70,  # 1920
    0x05, 0x00, 0x40, 0x02, 0x06,  # 1930
    0x00, 0x50, 0x03, 0x07, 0x00,  # 1940
    0x60, 0x04, 0x00, 0x20, 0x70,  # 1950
    0x05, 0x00, 0x30, 0x80, 0x06,  # 1960
    0x00, 0x40, 0x03, 0x07, 0x00,  # 1970
    0x50, 0x04, 0x08, 0x00, 0x60,  # 1980
    0x04, 0x0a, 0x00, 0x60, 0x05,  # 1990
    0x00, 0x30, 0x80, 0x05, 0x00,  # 2000
    0x40, 0x02, 0x07, 0x00, 0x50,  # 2010
    0x04, 0x09, 0x00, 0x60, 0x04,  # 2020
    0x00, 0x20, 0x60, 0x05, 0x00,  # 2030
    0x30, 0xb0, 0x06, 0x00, 0x50,  # 2040
    0x02, 0x07, 0x00, 0x50, 0x03,  # 2050
)

END_YEAR = START_YEAR + len(LUNAR_MONTH_DAYS) - 1

# 二十四节气，两两对应公历 1~12 月
SOLAR_TERM_NAMES = (
    "小寒", "大寒", "立春", "雨水", "惊蛰", "春分",
    "清明", "谷雨", "立夏", "小满", "芒种", "夏至",
    "小暑", "大暑", "立秋", "处暑", "白露", "秋分",
    "寒露", "霜降", "立冬", "小雪", "大雪", "冬至",
)

# 十二"节"划分干支月：(月序, 月支)
ODD_TERM_TO_MONTH = MappingProxyType({
    "立春": (0, "寅"),
    "惊蛰": (1, "卯"),
    "清明": (2, "辰"),
    "立夏": (3, "巳"),
    "芒种": (4, "午"),
    "小暑": (5, "未"),
    "立秋": (6, "申"),
    "白露": (7, "酉"),
    "寒露": (8, "戌"),
    "立冬": (9, "亥"),
    "大雪": (10, "子"),
    "小寒": (11, "丑"),
})
_BRANCH_BY_MONTH_INDEX = MappingProxyType(
    {index: branch for index, branch in ODD_TERM_TO_MONTH.values()}
)

# 各节气距 1900 年小寒的累积秒数
TERM_EPOCH_OFFSETS = (
    0.00, 1272494.40, 2548020.60, 3830143.80, 5120226.60, 6420865.80,
    7732018.80, 9055272.60, 10388958.00, 11733065.40, 13084292.40, 14441592.00,
    15800560.80, 17159347.20, 18513766.20, 19862002.20, 21201005.40, 22529659.80,
    23846845.20, 25152606.00, 26447687.40, 27733451.40, 29011921.20, 30285477.60,
)
BASE_1900_SLIGHT_COLD_JD = 2415025.5868055555
TROPICAL_YEAR_DAYS = 365.24219878

# 非节日回溯寻找最近"节"的天数上限
MONTH_SEARCH_DAYS = 40


class LunarDate(NamedTuple):
    year: int
    month: int
    day: int


class FourPillars(NamedTuple):
    year: str
    month: str
    day: str
    hour: str

    def __str__(self) -> str:
        return f"{self.year}年 {self.month}月 {self.day}日 {self.hour}时"


def cycle(value: int, size: int) -> int:
    """1-based cyclic index: 0 maps to ``size``."""
    return (value - 1) % size + 1


def ganzhi_of_year(lunar_year: int) -> str:
    n = lunar_year - 3 - 1
    return STEMS[n % 10] + BRANCHES[n % 12]


# ==================== 农历表查询 ====================

def _table_offset(lunar_year: int) -> int:
    offset = lunar_year - START_YEAR
    if not 0 <= offset < len(LUNAR_MONTH_DAYS):
        raise UnsupportedDate(
            f"lunar year {lunar_year} is outside the supported range {START_YEAR}-{END_YEAR}"
        )
    return offset


def leap_month(lunar_year: int) -> int:
    """Return the leap month (1-12) of a lunar year, or 0 if there is none."""
    offset = _table_offset(lunar_year)
    flag = LEAP_MONTHS[offset // 2]
    return flag & 0x0F if offset % 2 else flag >> 4


def lunar_month_days(lunar_year: int, lunar_month: int) -> tuple[int, int]:
    """
    Return ``(leap_days, days)`` for a lunar month.

    ``days`` is the length of the ordinary month; ``leap_days`` is the length
    of the leap month that follows it, or 0 when the month is not leap.
    """
    word = LUNAR_MONTH_DAYS[_table_offset(lunar_year)]
    leap = leap_month(lunar_year)

    bit = 16 - lunar_month
    if leap and lunar_month > leap:
        bit -= 1

    days = 30 if word & (1 << bit) else 29
    leap_days = 0
    if lunar_month == leap:
        leap_days = 30 if word & (1 << (bit - 1)) else 29
    return leap_days, days


def lunar_year_days(lunar_year: int) -> int:
    return sum(sum(lunar_month_days(lunar_year, month)) for month in range(1, 13))


def civil_to_lunar(moment: datetime) -> LunarDate:
    """
    Convert a civil date to its lunar date.

    Raises:
        UnsupportedDate: before 1901-01-01, beyond the table, or inside a
            leap month (the tables cannot tell a leap month apart).
    """
    delta_days = (moment - EPOCH).days
    if delta_days < 0:
        raise UnsupportedDate(f"{moment:%Y-%m-%d} is before {EPOCH:%Y-%m-%d}")

    if delta_days < EPOCH_TO_NEW_YEAR_DAYS:
        # 1901 元旦至春节之间属农历 1900 年冬月、腊月
        if delta_days < 19:
            return LunarDate(START_YEAR - 1, 11, 11 + delta_days)
        return LunarDate(START_YEAR - 1, 12, delta_days - 18)

    delta_days -= EPOCH_TO_NEW_YEAR_DAYS
    year = START_YEAR
    month = 1

    year_days = lunar_year_days(year)
    while delta_days >= year_days:
        delta_days -= year_days
        year += 1
        year_days = lunar_year_days(year)

    _, month_days = lunar_month_days(year, month)
    while delta_days >= month_days:
        delta_days -= month_days
        if month == leap_month(year):
            leap_days, _ = lunar_month_days(year, month)
            if delta_days < leap_days:
                raise UnsupportedDate(
                    f"{moment:%Y-%m-%d} falls inside leap month {month} of lunar year {year}"
                )
            delta_days -= leap_days
        month += 1
        _, month_days = lunar_month_days(year, month)

    return LunarDate(year, month, 1 + delta_days)


# ==================== 儒略日与节气 ====================

def julian_day(moment: datetime) -> float:
    """Julian day of the civil date (time of day is ignored)."""
    year, month, day = moment.year, moment.month, moment.day
    if month <= 2:
        month += 12
        year -= 1
    b = 2 - year // 100 + year // 400
    dd = day + 0.5000115740
    return math.floor(365.25 * (year + 4716) + 0.01) + math.floor(30.60001 * (month + 1)) + dd + b - 1524.5


def solar_term_julian_day(year: int, index: int) -> float:
    """Approximate Julian day of solar term ``index`` (0 = 小寒) in ``year``."""
    st_jd = TROPICAL_YEAR_DAYS * (year - 1900) + TERM_EPOCH_OFFSETS[index] / 86400.0
    return BASE_1900_SLIGHT_COLD_JD + st_jd


def solar_term_of(moment: datetime) -> str:
    """Name of the solar term falling on this civil day, or ``""``."""
    jd = julian_day(moment)
    for index, name in enumerate(SOLAR_TERM_NAMES):
        delta = jd - solar_term_julian_day(moment.year, index)
        if -0.5 <= delta <= 0.5:
            return name
    return ""


# ==================== 四柱 ====================

class GanZhiCalendar:
    """
    干支四柱计算器。

    Pillars are cached per instance: the month pillar reuses the year pillar
    and the hour pillar reuses the day pillar, computing them on demand.
    """

    def __init__(self, moment: Optional[datetime] = None):
        self.moment = moment or datetime.now()
        self._lunar: Optional[LunarDate] = None
        self._year_pillar: Optional[str] = None
        self._day_pillar: Optional[str] = None

    @property
    def lunar_date(self) -> LunarDate:
        if self._lunar is None:
            self._lunar = civil_to_lunar(self.moment)
        return self._lunar

    def year_pillar(self) -> str:
        """干支纪年 (by lunar year), e.g. ``"甲子"``."""
        self._year_pillar = ganzhi_of_year(self.lunar_date.year)
        return self._year_pillar

    def month_pillar(self) -> str:
        """干支纪月, split by the twelve jie terms."""
        year_pillar = self._year_pillar or self.year_pillar()
        lunar_month = self.lunar_date.month

        term = solar_term_of(self.moment)
        if term in ODD_TERM_TO_MONTH:
            index = ODD_TERM_TO_MONTH[term][0]
            if index == 0 and lunar_month == 12:
                # 腊月已立春，年柱进一
                year_pillar = ganzhi_of_year(self.lunar_date.year + 1)
        else:
            index = 0
            for back in range(1, MONTH_SEARCH_DAYS + 1):
                probe = solar_term_of(self.moment - timedelta(days=back))
                if probe not in ODD_TERM_TO_MONTH:
                    continue
                probe_index = ODD_TERM_TO_MONTH[probe][0]
                if probe_index > 0:
                    index = probe_index
                elif lunar_month == 12:
                    year_pillar = ganzhi_of_year(self.lunar_date.year + 1)
                break

        month_number = (STEMS.index(year_pillar[0]) + 1) * 2 + index + 1
        stem = STEMS[cycle(month_number, 10) - 1]
        # every index 0-11 has a branch; a KeyError here is a table bug
        return stem + _BRANCH_BY_MONTH_INDEX[index]

    def day_pillar(self) -> str:
        """干支纪日."""
        m = self.moment
        c = m.year // 100
        y = m.year % 100
        month = m.month
        if m.month <= 2:
            y -= 1
            month += 12
        d = m.day
        i = 0 if m.month % 2 == 1 else 6

        base = c // 4 + 5 * y + y // 4 + 3 * (month + 1) // 5 + d
        stem = (4 * c + base - 3 - 1) % 10
        branch = (8 * c + base + 7 + i - 1) % 12
        self._day_pillar = STEMS[stem] + BRANCHES[branch]
        return self._day_pillar

    def hour_pillar(self) -> str:
        """干支纪时 (时柱)."""
        day_pillar = self._day_pillar or self.day_pillar()
        # Math.round semantics: half rounds up, +0.1 pushes odd hours over
        branch = math.floor(self.moment.hour / 2 + 0.1 + 0.5) % 12

        day_stem_rem = cycle(STEMS.index(day_pillar[0]) + 1, 5)
        stem = cycle(day_stem_rem * 2 - 1 + branch, 10)
        return STEMS[stem - 1] + BRANCHES[branch]

    def full_pillars(self) -> FourPillars:
        year = self.year_pillar()
        month = self.month_pillar()
        day = self.day_pillar()
        hour = self.hour_pillar()
        return FourPillars(year, month, day, hour)


def get_full_bazi(moment: datetime) -> str:
    """Four pillars formatted as ``"甲子年 丙寅月 戊申日 壬子时"``."""
    return str(GanZhiCalendar(moment).full_pillars())
