# Read-side rollups for dashboards and exports. Nothing here writes.

import asyncio
import csv
import io
import json
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .config import REPORT_MONTHS, SENTIMENT_SAMPLE_LIMIT, now_utc
from .errors import NotFound, InvalidInput
from .ledger import percentage, poll_expires_at
from .models import (
    ExportKind, Sentiment, EngagementResponse, SummaryResponse, SentimentResponse,
)
from .store import Store, as_utc

logger = logging.getLogger(__name__)

EXPORT_FIELDS = {
    ExportKind.PETITIONS: ["id", "title", "creator", "assigned_to", "status", "category",
                           "location", "signatures_count", "signature_goal", "created_at"],
    ExportKind.POLLS: ["id", "title", "created_by", "options", "category", "target_location",
                       "created_at", "expires_at"],
    ExportKind.COMPLAINTS: ["id", "title", "created_by", "assigned_to", "status", "category",
                            "location", "created_at"],
}


def month_keys(now: datetime, months: int) -> List[str]:
    """``YYYY-MM`` labels for the last ``months`` months, oldest first."""
    year, month = now.year, now.month
    keys = []
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def bucket_by_month(stamps: Iterable[Optional[datetime]], keys: List[str]) -> List[int]:
    counts = dict.fromkeys(keys, 0)
    for stamp in stamps:
        if stamp is None:
            continue
        key = f"{stamp.year:04d}-{stamp.month:02d}"
        if key in counts:
            counts[key] += 1
    return [counts[k] for k in keys]


def _fmt(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return str(value)


def stringify_rows(rows: List[dict], fields: List[str]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fields, lineterminator="\n", extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: _fmt(row.get(k)) for k in fields})
    content = output.getvalue()
    output.close()
    return content


class Reports:
    def __init__(self, store: Store, analyzer=None, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.analyzer = analyzer
        self.clock = clock

    @property
    def db(self):
        return self.store.db

    # ------------------------------------------------------------------
    # Engagement / categories / summary
    # ------------------------------------------------------------------
    async def engagement(self, months: int = REPORT_MONTHS) -> EngagementResponse:
        now = self.clock()
        keys = month_keys(now, months)
        sources = {
            "petitions": (self.db.petitions, "created_at"),
            "signatures": (self.db.signatures, "signed_at"),
            "votes": (self.db.votes, "cast_at"),
            "complaints": (self.db.complaints, "created_at"),
        }

        def fetch():
            series = {}
            for name, (collection, field) in sources.items():
                stamps = [as_utc(d.get(field)) for d in collection.find({}, {field: 1})]
                series[name] = bucket_by_month(stamps, keys)
            return series
        series = await self.store.run(fetch)
        return EngagementResponse(months=keys, **series)

    async def category_breakdown(self) -> Dict[str, Dict[str, int]]:
        pipeline = [{"$group": {"_id": "$category", "count": {"$sum": 1}}}]

        def fetch():
            out = {}
            for name in ("complaints", "petitions", "polls"):
                rows = self.db[name].aggregate(pipeline)
                out[name] = {(r["_id"] or "uncategorized"): r["count"] for r in rows}
            return out
        return await self.store.run(fetch)

    async def summary(self) -> SummaryResponse:
        now = self.clock()
        status_pipe = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]

        def fetch():
            polls = list(self.db.polls.find({}, {"created_at": 1, "duration_hours": 1}))
            return {
                "total_complaints": self.db.complaints.count_documents({}),
                "total_petitions": self.db.petitions.count_documents({}),
                "total_polls": len(polls),
                "active_polls": sum(1 for p in polls if now <= poll_expires_at(p)),
                "total_votes": self.db.votes.count_documents({}),
                "total_signatures": self.db.signatures.count_documents({}),
                "complaint_status_distribution": {
                    r["_id"]: r["count"] for r in self.db.complaints.aggregate(status_pipe)},
                "petition_status_distribution": {
                    r["_id"]: r["count"] for r in self.db.petitions.aggregate(status_pipe)},
                "open_assignments": self.db.active_assignments.count_documents({}),
            }
        return SummaryResponse(**await self.store.run(fetch))

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    async def export_rows(self, kind: ExportKind) -> List[dict]:
        def fetch():
            docs = list(self.db[kind.value].find().sort("created_at", 1))
            user_ids = set()
            for d in docs:
                for field in ("creator", "created_by", "assigned_to"):
                    if d.get(field):
                        user_ids.add(d[field])
            emails = {u["_id"]: u.get("email", "")
                      for u in self.db.users.find({"_id": {"$in": list(user_ids)}}, {"email": 1})}
            return docs, emails

        docs, emails = await self.store.run(fetch)
        email = lambda uid: emails.get(uid, "") if uid else ""
        rows = []
        for d in docs:
            row = {"id": d["_id"], "title": d.get("title"), "status": d.get("status"),
                   "category": d.get("category"), "created_at": d.get("created_at")}
            if kind == ExportKind.PETITIONS:
                row.update(creator=email(d.get("creator")), assigned_to=email(d.get("assigned_to")),
                           location=d.get("location"), signatures_count=d.get("signatures_count", 0),
                           signature_goal=d.get("signature_goal"))
            elif kind == ExportKind.POLLS:
                row.update(created_by=email(d.get("created_by")),
                           options=json.dumps(d.get("options", [])),
                           target_location=d.get("target_location"),
                           expires_at=poll_expires_at(d) if d.get("created_at") else None)
            else:
                row.update(created_by=email(d.get("created_by")), assigned_to=email(d.get("assigned_to")),
                           location=d.get("location"))
            rows.append(row)
        return rows

    async def export_csv(self, kind: ExportKind) -> str:
        rows = await self.export_rows(kind)
        logger.info("Exported %d %s rows", len(rows), kind.value)
        return stringify_rows(rows, EXPORT_FIELDS[kind])

    # ------------------------------------------------------------------
    # Sentiment
    # ------------------------------------------------------------------
    async def _classify(self, texts: List[str]) -> SentimentResponse:
        results = {s.value: 0 for s in Sentiment}
        texts = [t for t in texts if isinstance(t, str) and t.strip()]
        if texts and self.analyzer is not None:
            gate = asyncio.Semaphore(5)

            async def one(text):
                async with gate:
                    return await self.analyzer.analyze(text)
            for sentiment in await asyncio.gather(*(one(t) for t in texts)):
                results[sentiment.value] += 1
        elif texts:
            results[Sentiment.NEUTRAL.value] = len(texts)
        total = sum(results.values())
        return SentimentResponse(
            results=results, total=total, type="aggregate",
            percentages={k: percentage(v, total) for k, v in results.items()})

    async def sentiment(self, limit: int = SENTIMENT_SAMPLE_LIMIT) -> SentimentResponse:
        def fetch():
            texts = []
            for p in self.db.petitions.find().limit(limit):
                texts += [p.get("title"), p.get("summary"), p.get("description")]
                texts += [c.get("text") for c in p.get("comments") or []]
            for p in self.db.polls.find().limit(limit):
                texts.append(p.get("title") or p.get("description"))
            for c in self.db.complaints.find().limit(limit):
                texts += [c.get("title"), c.get("description")]
            return texts
        return await self._classify(await self.store.run(fetch))

    async def entity_sentiment(self, kind: str, entity_id: str) -> SentimentResponse:
        if kind not in {k.value for k in ExportKind}:
            raise InvalidInput("Invalid entity type")
        entity = await self.store.run(self.db[kind].find_one, {"_id": entity_id})
        if not entity:
            raise NotFound(kind[:-1].capitalize())
        texts = [entity.get("description") or entity.get("title")]
        texts += [c.get("text") for c in entity.get("comments") or []]
        report = await self._classify(texts)
        report.type = kind
        return report
