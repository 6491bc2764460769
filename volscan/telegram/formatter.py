"""
Telegram message composition (HTML parse mode).

Produces plain text blocks only; sending is the notifier's job. When a
report exceeds the message size limit it is split into one summary
message plus one message per instrument block, never truncated.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from html import escape
from zoneinfo import ZoneInfo

from volscan.core.models import BacktestResult, RankingDelta, RankingSnapshot

SOURCE_LINE = "📡 <i>CoinGecko — Realized {days}-Day Volatility</i>"

# longest entity we produce is "&quot;"
_MAX_ENTITY = 8


def _split_line(line: str, limit: int) -> tuple[str, str]:
    """
    Cut ``line`` to at most ``limit`` characters, never inside an HTML tag
    or entity. Prefers the last space; the space itself is dropped.
    """
    space = -1
    boundary = 0
    in_tag = False
    entity_start = -1
    for pos in range(limit + 1):
        if not in_tag and entity_start < 0 and pos > 0:
            boundary = pos
        if pos == limit:
            break
        ch = line[pos]
        if in_tag:
            in_tag = ch != ">"
        elif entity_start >= 0:
            if ch == ";" or ch.isspace() or pos - entity_start > _MAX_ENTITY:
                entity_start = -1
        elif ch == "<":
            in_tag = True
        elif ch == "&":
            entity_start = pos
        elif ch == " " and pos > 0:
            space = pos

    if space > 0:
        return line[:space], line[space + 1:]
    # a single tag longer than the limit cannot be kept whole
    cut = boundary or limit
    return line[:cut], line[cut:]


class ReportFormatter:
    """
    Formats ranking summaries, backtest blocks, and failure notices.

    Args:
        top_n: Configured list size shown in headers
        lookback_days: Volatility lookback shown in the source line
        check_interval_hours: Shown in the bootstrap footer
        max_message_length: Channel limit per message
        tz: Timezone for the date line
    """

    def __init__(
        self,
        top_n: int,
        lookback_days: int = 7,
        check_interval_hours: float = 6,
        max_message_length: int = 4096,
        tz: str = "UTC",
    ) -> None:
        self.top_n = top_n
        self.lookback_days = lookback_days
        self.check_interval_hours = check_interval_hours
        self.max_message_length = max_message_length
        self.tz = ZoneInfo(tz)

    # =========================================================================
    # Blocks
    # =========================================================================

    def date_line(self, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        return f"📅 {now.astimezone(self.tz).strftime('%d.%m.%Y %H:%M:%S')}"

    @staticmethod
    def ranking_line(rank: int, symbol: str, volatility: float) -> str:
        return f"  {rank}. {escape(symbol)} — %{volatility:.2f}"

    def ranked_list(self, snapshot: RankingSnapshot) -> list[str]:
        return [
            self.ranking_line(i, symbol, vol)
            for i, (symbol, vol) in enumerate(snapshot.entries, start=1)
        ]

    def summary(self, delta: RankingDelta, now: datetime | None = None) -> str:
        """Header plus ranked list (bootstrap) or entries/exits/current list."""
        source = SOURCE_LINE.format(days=self.lookback_days)

        if delta.is_initial:
            lines = [
                "✅ <b>Volatility Bot Started!</b>",
                self.date_line(now),
                source,
                "",
                f"📊 <b>Initial Top {self.top_n}:</b>",
                *self.ranked_list(delta.current),
                "",
                f"Checking every {self.check_interval_hours:g} hours.",
            ]
            return "\n".join(lines)

        lines = [
            f"🚨 <b>Top {self.top_n} List Changed!</b>",
            self.date_line(now),
            source,
            "",
        ]
        entries = delta.ordered_entries()
        if entries:
            lines.append("✅ <b>Entered:</b>")
            for symbol in entries:
                vol = delta.current.volatility_of(symbol) or 0.0
                lines.append(f"  #{delta.rank_of(symbol)} {escape(symbol)} — %{vol:.2f}")
        exits = delta.ordered_exits()
        if exits:
            if entries:
                lines.append("")
            lines.append("❌ <b>Dropped:</b>")
            lines.extend(f"  {escape(symbol)}" for symbol in exits)
        lines += ["", f"📊 <b>Current Top {self.top_n}:</b>", *self.ranked_list(delta.current)]
        return "\n".join(lines)

    @staticmethod
    def backtest_block(
        symbol: str,
        results: Mapping[int, BacktestResult],
        volatility: float | None = None,
    ) -> str:
        """Per-window grid backtest lines for one instrument."""
        header = f"📈 <b>{escape(symbol)}</b> — grid backtest"
        if volatility is not None:
            header += f" (vol %{volatility:.2f})"
        lines = [header]

        grid_line = None
        for days in sorted(results):
            result = results[days]
            if not result.available:
                lines.append(f"  {days}d: n/a ({escape(result.reason)})")
                continue
            if grid_line is None and result.grid is not None:
                grid_line = (
                    f"  grid: {result.grid.grid_count} lines "
                    f"{float(result.grid.lower_bound):.6g}–{float(result.grid.upper_bound):.6g}"
                )
            lines.append(
                f"  {days}d: {float(result.profit_pct):+.2f}% "
                f"({float(result.total_pnl):+.2f}) · {result.trade_count} trades · "
                f"fee {float(result.total_fee):.2f}"
            )
        if grid_line:
            lines.insert(1, grid_line)
        return "\n".join(lines)

    @staticmethod
    def failure(error: BaseException | str) -> str:
        return f"⚠️ Bot error: {escape(str(error))}"

    # =========================================================================
    # Report assembly
    # =========================================================================

    def compose(self, summary: str, blocks: list[str]) -> list[str]:
        """
        Messages to send for one report.

        Fits in one message when possible; otherwise the summary and each
        block go out separately, and any single oversize piece is cut on
        line boundaries, then at spaces outside HTML markup.
        """
        combined = "\n\n".join([summary, *blocks])
        if len(combined) <= self.max_message_length:
            return [combined]

        messages: list[str] = []
        for piece in [summary, *blocks]:
            messages.extend(self._chunk(piece))
        return messages

    def _chunk(self, text: str) -> list[str]:
        limit = self.max_message_length
        if len(text) <= limit:
            return [text]

        chunks: list[str] = []
        current = ""
        for line in text.split("\n"):
            while len(line) > limit:
                if current:
                    chunks.append(current)
                    current = ""
                head, line = _split_line(line, limit)
                chunks.append(head)
            candidate = f"{current}\n{line}" if current else line
            if len(candidate) > limit:
                chunks.append(current)
                current = line
            else:
                current = candidate
        if current:
            chunks.append(current)
        return chunks
