from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, create_engine, false, or_, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..engine import parse_text, read_statement_text
from ..errors import ParseError
from ..logging_setup import get_logger
from ..money import money_to_text
from ..summary import SUBTOTAL_PREFIX, summarize

logger = get_logger(__name__)

APP_DIR = Path(__file__).resolve().parent
CONFIG_PATH = APP_DIR / "config.json"
UPLOAD_SUFFIXES = (".pdf", ".txt")


class Base(DeclarativeBase):
    pass


class Statement(Base):
    __tablename__ = "statements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_filename: Mapped[str] = mapped_column(String(512), nullable=False)
    stored_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    fingerprint: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    institution: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    statement_date: Mapped[str] = mapped_column(String(32), nullable=False)
    strategy: Mapped[str] = mapped_column(String(16), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(128), nullable=False)
    accounts_json: Mapped[str] = mapped_column(Text, nullable=False)
    parsed_json: Mapped[str] = mapped_column(Text, nullable=False)


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    statement_id: Mapped[int] = mapped_column(ForeignKey("statements.id"), index=True, nullable=False)
    institution: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    account: Mapped[str] = mapped_column(String(32), index=True, nullable=False)

    date: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    # Amounts are kept as the exact two-decimal text the parser produced.
    debit: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    credit: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    balance: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    ambiguous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    split_legs: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reconciled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)


@dataclass(frozen=True)
class Scope:
    institutions: Set[str]
    accounts: Set[str]


@dataclass(frozen=True)
class User:
    username: str
    token: str
    role: str
    read_scope: Scope


class LoginRequest(BaseModel):
    token: str


def parse_scope(raw: Optional[list]) -> Scope:
    rules = raw or []
    if not isinstance(rules, list):
        raise RuntimeError("permission scope must be a list of typed rules")

    institutions: Set[str] = set()
    accounts: Set[str] = set()

    for rule in rules:
        if not isinstance(rule, dict):
            raise RuntimeError("each permission rule must be an object")
        rule_type = str(rule.get("type", "")).strip()
        value = str(rule.get("value", "")).strip()
        if not rule_type or not value:
            continue
        if rule_type == "institution":
            institutions.add(value)
        elif rule_type == "account":
            accounts.add(value)
        else:
            raise RuntimeError(f"unsupported permission type: {rule_type}")

    return Scope(institutions=institutions, accounts=accounts)


def load_config(path: Path = CONFIG_PATH) -> dict:
    if not path.exists():
        raise RuntimeError(f"Missing config file: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def build_user_index(cfg: dict) -> Dict[str, User]:
    users: Dict[str, User] = {}
    for raw in cfg.get("users", []):
        token = str(raw.get("token", "")).strip()
        if not token:
            continue
        role = str(raw.get("role", "user")).strip().lower()
        perms = raw.get("permissions", {}) if role != "admin" else {}
        if role != "admin" and not isinstance(perms, dict):
            raise RuntimeError("permissions must be an object")
        if role != "admin" and "read" not in perms:
            raise RuntimeError("permissions.read is required for non-admin users")
        users[token] = User(
            username=str(raw.get("username", "unknown")),
            token=token,
            role=role,
            read_scope=parse_scope(perms.get("read")),
        )
    return users


def has_full_statement_access(user: User, statement: Statement) -> bool:
    if user.role == "admin":
        return True
    return statement.institution in user.read_scope.institutions


def can_see_statement_in_list(user: User, statement: Statement) -> bool:
    if has_full_statement_access(user, statement):
        return True
    accounts = set(json.loads(statement.accounts_json))
    return bool(accounts.intersection(user.read_scope.accounts))


def ensure_admin(user: User) -> None:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="admin permission required")


def apply_transaction_read_scope(stmt, user: User):
    if user.role == "admin":
        return stmt
    scope_predicates = []
    if user.read_scope.institutions:
        scope_predicates.append(Transaction.institution.in_(user.read_scope.institutions))
    if user.read_scope.accounts:
        scope_predicates.append(Transaction.account.in_(user.read_scope.accounts))
    if not scope_predicates:
        return stmt.where(false())
    return stmt.where(or_(*scope_predicates))


def statement_fingerprint(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def transaction_to_json(tx: Transaction) -> dict:
    return {
        "id": tx.id,
        "statement_id": tx.statement_id,
        "institution": tx.institution,
        "account": tx.account,
        "date": tx.date,
        "description": tx.description,
        "debit": tx.debit,
        "credit": tx.credit,
        "balance": tx.balance,
        "category": tx.category,
        "ambiguous": tx.ambiguous,
        "split_legs": tx.split_legs,
        "reconciled": tx.reconciled,
        "source": tx.source,
    }


def resolve_path(raw: str, base_dir: Path) -> Path:
    path = Path(raw)
    return path if path.is_absolute() else base_dir / path


def create_app(config: Optional[dict] = None) -> FastAPI:
    if config is None:
        cfg = load_config()
        base_dir = CONFIG_PATH.parent
    else:
        cfg = config
        base_dir = Path.cwd()

    db_path = resolve_path(cfg.get("database", {}).get("sqlite_path", "data/app.db"), base_dir)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    upload_dir = resolve_path(cfg.get("storage", {}).get("upload_dir", "data/uploads"), base_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    engine = create_engine(f"sqlite+pysqlite:///{db_path}", future=True)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(engine)

    user_index = build_user_index(cfg)

    app = FastAPI(title="Statement Transactions API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.get("server", {}).get("cors_origins", ["*"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    bearer = HTTPBearer(auto_error=False)

    def get_db() -> Iterator[Session]:
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(bearer),
    ) -> User:
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise HTTPException(status_code=401, detail="missing bearer token")
        user = user_index.get(credentials.credentials.strip())
        if user is None:
            raise HTTPException(status_code=401, detail="invalid token")
        return user

    @app.get("/api/health")
    def health() -> dict:
        return {"ok": True}

    @app.post("/api/login")
    def login(payload: LoginRequest) -> dict:
        user = user_index.get(payload.token.strip())
        if not user:
            raise HTTPException(status_code=401, detail="invalid token")
        return {
            "username": user.username,
            "role": user.role,
            "token": user.token,
        }

    @app.get("/api/me")
    def me(user: User = Depends(get_current_user)) -> dict:
        return {
            "username": user.username,
            "role": user.role,
        }

    @app.post("/api/statements/upload")
    async def upload_statement(
        file: UploadFile = File(...),
        bank: str = Query(default="auto"),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> dict:
        ensure_admin(user)

        filename = os.path.basename(file.filename or "")
        if not filename.lower().endswith(UPLOAD_SUFFIXES):
            raise HTTPException(status_code=400, detail="only .pdf and .txt statements are supported")

        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        stored_path = upload_dir / f"{stamp}_{filename}"

        with stored_path.open("wb") as out:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                out.write(chunk)

        try:
            statement_text = read_statement_text(stored_path)
            result = parse_text(statement_text, bank=bank)
        except ParseError as e:
            stored_path.unlink(missing_ok=True)
            raise HTTPException(status_code=400, detail=f"parse failed: {e}")

        fingerprint = statement_fingerprint(statement_text)
        existing = db.scalars(select(Statement).where(Statement.fingerprint == fingerprint)).first()
        if existing is not None:
            stored_path.unlink(missing_ok=True)
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "duplicate statement detected",
                    "existing_statement_id": existing.id,
                    "institution": existing.institution,
                    "statement_date": existing.statement_date,
                },
            )

        accounts = {txn.account for txn in result.transactions if txn.account}
        if result.account:
            accounts.add(result.account)
        st = Statement(
            original_filename=filename,
            stored_path=str(stored_path),
            fingerprint=fingerprint,
            institution=result.institution,
            statement_date=result.statement_date,
            strategy=result.strategy,
            uploaded_at=datetime.now(timezone.utc),
            uploaded_by=user.username,
            accounts_json=json.dumps(sorted(accounts)),
            parsed_json=json.dumps(result.to_json(), ensure_ascii=False),
        )
        db.add(st)
        db.flush()

        for txn in result.transactions:
            db.add(
                Transaction(
                    statement_id=st.id,
                    institution=st.institution,
                    account=txn.account or result.account,
                    date=txn.date,
                    description=txn.description,
                    category=txn.category,
                    debit=money_to_text(txn.debit) or None,
                    credit=money_to_text(txn.credit) or None,
                    balance=money_to_text(txn.balance) or None,
                    ambiguous=txn.ambiguous,
                    split_legs=txn.split_legs,
                    reconciled=txn.reconciled,
                    source=txn.source,
                )
            )
        db.commit()
        logger.info("Stored statement %d (%s, %d transactions)", st.id, st.institution, len(result.transactions))

        return {
            "statement_id": st.id,
            "institution": st.institution,
            "statement_date": st.statement_date,
            "strategy": st.strategy,
            "transactions_count": len(result.transactions),
            "note": result.note.note if result.note is not None else None,
        }

    @app.get("/api/statements")
    def list_statements(
        limit: int = Query(default=500, ge=1, le=2000),
        offset: int = Query(default=0, ge=0),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> dict:
        rows = db.scalars(select(Statement).order_by(Statement.id.desc())).all()
        visible: List[dict] = []
        for st in rows:
            if not can_see_statement_in_list(user, st):
                continue
            visible.append(
                {
                    "id": st.id,
                    "original_filename": st.original_filename,
                    "institution": st.institution,
                    "statement_date": st.statement_date,
                    "strategy": st.strategy,
                    "uploaded_at": st.uploaded_at.isoformat(),
                    "uploaded_by": st.uploaded_by,
                    "can_view_raw": has_full_statement_access(user, st),
                }
            )

        total = len(visible)
        items = visible[offset : offset + limit]
        returned = len(items)
        return {
            "items": items,
            "offset": offset,
            "limit": limit,
            "returned": returned,
            "total": total,
            "has_more": offset + returned < total,
        }

    @app.get("/api/statements/{statement_id}")
    def get_statement(
        statement_id: int,
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> dict:
        st = db.get(Statement, statement_id)
        if not st:
            raise HTTPException(status_code=404, detail="statement not found")
        if not has_full_statement_access(user, st):
            raise HTTPException(status_code=403, detail="forbidden")

        return {
            "id": st.id,
            "original_filename": st.original_filename,
            "institution": st.institution,
            "statement_date": st.statement_date,
            "strategy": st.strategy,
            "uploaded_at": st.uploaded_at.isoformat(),
            "uploaded_by": st.uploaded_by,
            "parsed": json.loads(st.parsed_json),
        }

    @app.get("/api/transactions")
    def list_transactions(
        statement_id: Optional[int] = Query(default=None),
        institution: Optional[str] = Query(default=None),
        account: Optional[str] = Query(default=None),
        category: Optional[str] = Query(default=None),
        q: Optional[str] = Query(default=None),
        limit: int = Query(default=500, ge=1, le=2000),
        offset: int = Query(default=0, ge=0),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> dict:
        stmt = select(Transaction).order_by(Transaction.id.asc())
        stmt = apply_transaction_read_scope(stmt, user)

        if statement_id is not None:
            stmt = stmt.where(Transaction.statement_id == statement_id)
        if institution:
            stmt = stmt.where(Transaction.institution == institution)
        if account:
            stmt = stmt.where(Transaction.account == account)
        if category:
            stmt = stmt.where(Transaction.category == category)
        if q:
            stmt = stmt.where(Transaction.description.ilike(f"%{q}%"))

        rows = db.scalars(stmt.offset(offset).limit(limit + 1)).all()
        has_more = len(rows) > limit
        out = [transaction_to_json(tx) for tx in rows[:limit]]
        return {
            "items": out,
            "offset": offset,
            "limit": limit,
            "returned": len(out),
            "has_more": has_more,
        }

    @app.get("/api/statement_summary")
    def get_statement_summary(
        statement_id: int = Query(..., ge=1),
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> dict:
        st = db.get(Statement, statement_id)
        if not st:
            raise HTTPException(status_code=404, detail="statement not found")

        stmt = select(Transaction).where(Transaction.statement_id == statement_id).order_by(Transaction.id.asc())
        stmt = apply_transaction_read_scope(stmt, user)
        rows = db.scalars(stmt).all()

        summary = summarize(rows)
        categories = [
            {
                "category": row.description[len(SUBTOTAL_PREFIX):],
                "debit": money_to_text(row.debit) or None,
                "credit": money_to_text(row.credit) or None,
            }
            for row in summary[:-1]
        ]
        total = summary[-1]

        show_stmt_meta = can_see_statement_in_list(user, st)
        return {
            "statement_id": st.id,
            "institution": st.institution if show_stmt_meta else None,
            "statement_date": st.statement_date if show_stmt_meta else None,
            "transactions_count": len(rows),
            "categories": categories,
            "total": {
                "debit": money_to_text(total.debit),
                "credit": money_to_text(total.credit),
            },
        }

    return app
