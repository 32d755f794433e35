"""JSON API over the loan engine.

Endpoints accept and return the same record shapes as the CLI's JSON files.
Calculation endpoints are stateless; only the balance recompute writes, and
only to the balance cache.
"""

import logging
import os
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from loan_engine.accrual import calculate_accrued_interest, calculate_accrued_interest_with_transactions
from loan_engine.batch import recompute_loan_balances
from loan_engine.config import EngineSettings, load_settings
from loan_engine.data_models import Loan, LoanTerms, OverpaymentOption, ScheduleRow, Transaction
from loan_engine.ledger import build_capital_events, calculate_interest_from_ledger
from loan_engine.observability import LoggingObserver
from loan_engine.reconciler import calculate_loan_interest_balance
from loan_engine.schedule import generate_schedule
from loan_engine.summary import summarize
from loan_engine.utils import to_date, to_decimal
from loan_engine.waterfall import apply_manual_payment, apply_payment_waterfall
from loan_engine_web.balance_store import BalanceStore, create_store_from_env

logger = logging.getLogger("loan_engine_web")


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _required_date(data: Dict[str, Any], key: str):
    value = to_date(data.get(key))
    if value is None:
        raise ValueError(f"'{key}' is required")
    return value


def _loan_bundle(data: Dict[str, Any]) -> Tuple[Loan, List[Transaction], List[ScheduleRow]]:
    if "loan" not in data:
        raise ValueError("'loan' is required")
    loan = Loan.from_dict(data["loan"])
    transactions = [Transaction.from_dict(t) for t in data.get("transactions", [])]
    schedule = [ScheduleRow.from_dict(r) for r in data.get("schedule", [])]
    return loan, transactions, schedule


def create_app(
    database_url: Optional[str] = None,
    settings: Optional[EngineSettings] = None,
    store: Optional[BalanceStore] = None,
) -> Flask:
    app = Flask(__name__)
    app.secret_key = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    engine_settings = settings or load_settings()
    balance_store = store or create_store_from_env(database_url or os.environ.get("LOAN_ENGINE_DATABASE_URL"))
    observer = LoggingObserver()
    app.config["BALANCE_STORE"] = balance_store

    @app.errorhandler(ValueError)
    @app.errorhandler(KeyError)
    def bad_request(exc):
        logger.info("Rejected request to %s: %s", request.path, exc)
        return jsonify({"error": str(exc)}), 400

    @app.post("/api/schedule")
    def schedule():
        terms = LoanTerms.from_dict(_payload())
        rows = generate_schedule(terms, engine_settings, observer)
        return jsonify({"summary": summarize(rows).to_dict(), "schedule": [r.to_dict() for r in rows]})

    @app.post("/api/summary")
    def summary():
        terms = LoanTerms.from_dict(_payload())
        return jsonify({"summary": summarize(generate_schedule(terms, engine_settings, observer)).to_dict()})

    @app.post("/api/interest")
    def interest():
        data = _payload()
        loan, transactions, _ = _loan_bundle(data)
        events = build_capital_events(loan, transactions)
        result = calculate_interest_from_ledger(
            loan, events, _required_date(data, "from"), _required_date(data, "to"), observer
        )
        return jsonify({"events": [e.to_dict() for e in events], "interest": result.to_dict()})

    @app.post("/api/balance")
    def balance():
        data = _payload()
        loan, transactions, rows = _loan_bundle(data)
        result = calculate_loan_interest_balance(
            loan, rows, transactions, _required_date(data, "as_of"), engine_settings, observer
        )
        return jsonify({"balance": result.to_dict()})

    @app.post("/api/accrued")
    def accrued():
        data = _payload()
        loan, transactions, rows = _loan_bundle(data)
        as_of = _required_date(data, "as_of")
        live = calculate_accrued_interest_with_transactions(loan, transactions, as_of, rows, engine_settings, observer)
        return jsonify(
            {
                "settlement_estimate": str(calculate_accrued_interest(loan, as_of, observer)),
                "accrued": live.to_dict(),
            }
        )

    @app.post("/api/waterfall")
    def waterfall():
        data = _payload()
        rows = [ScheduleRow.from_dict(r) for r in data.get("schedule", [])]
        credit = to_decimal(data.get("credit"))
        option = OverpaymentOption.parse(data.get("option"))
        due_by = to_date(data.get("due_by"))
        if data.get("amount") is not None:
            result = apply_payment_waterfall(to_decimal(data["amount"]), rows, credit, option, due_by, engine_settings)
        elif data.get("interest") is not None or data.get("principal") is not None:
            result = apply_manual_payment(
                to_decimal(data.get("interest")),
                to_decimal(data.get("principal")),
                rows,
                credit,
                option,
                due_by,
                engine_settings,
            )
        else:
            raise ValueError("Provide 'amount' or an 'interest'/'principal' split")
        return jsonify({"waterfall": result.to_dict()})

    @app.post("/api/balances/recompute")
    def recompute_balances():
        data = _payload()
        as_of = _required_date(data, "as_of")
        loans: List[Loan] = []
        bundles: Dict[int, Tuple[List[Transaction], List[ScheduleRow]]] = {}
        for entry in data.get("loans", []):
            loan, transactions, rows = _loan_bundle(entry)
            loans.append(loan)
            bundles[id(loan)] = (transactions, rows)
        result = recompute_loan_balances(
            loans,
            lambda loan: bundles[id(loan)],
            balance_store,
            as_of,
            settings=engine_settings,
            observer=observer,
        )
        return jsonify({"result": result.to_dict(), "balances": balance_store.list_balances()})

    @app.get("/api/balances")
    def list_balances():
        return jsonify({"balances": balance_store.list_balances()})

    @app.get("/api/balances/<loan_id>")
    def get_balance(loan_id: str):
        row = balance_store.get_balance(loan_id)
        if row is None:
            return jsonify({"error": f"No cached balance for loan {loan_id}"}), 404
        return jsonify(row)

    @app.delete("/api/balances/<loan_id>")
    def remove_balance(loan_id: str):
        balance_store.remove_balance(loan_id)
        return "", 204

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("Starting Loan Engine API...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
