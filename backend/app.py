import logging
from typing import Any

from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS

load_dotenv()

from config import Settings
from contract_gateway import ContractGateway
from coordinator import ActionState, TransactionCoordinator
from errors import ActionInProgress
from fhe_gateway import EncryptionGateway, load_fhe_service
from notifications import StatusNotifier
from proposals import ProposalStore
from web3_contract import build_contract_handles

logger = logging.getLogger(__name__)


def build_coordinator(settings: Settings) -> TransactionCoordinator:
    settings.require_fhe()
    read_only, signer, signer_address = build_contract_handles(settings)
    contract = ContractGateway(read_only, signer)
    store = ProposalStore(contract, active_window=settings.active_window_seconds)
    notifier = StatusNotifier(settings.success_ttl_seconds, settings.error_ttl_seconds)
    encryption = EncryptionGateway(load_fhe_service(settings.fhe_client_factory))
    return TransactionCoordinator(contract, encryption, store, notifier, user_address=signer_address)


def create_app(coordinator: TransactionCoordinator | None = None, init_error: str | None = None) -> Flask:
    if coordinator is None and init_error is None:
        return create_app_from_env()
    return build_app(coordinator, init_error)


def build_app(coordinator: TransactionCoordinator | None, init_error: str | None = None) -> Flask:
    app = Flask(__name__)
    CORS(app)

    def _coordinator_or_error() -> tuple[TransactionCoordinator | None, tuple[dict[str, str], int] | None]:
        if coordinator is None:
            return None, ({"error": f"Voting clients unavailable: {init_error or 'unknown error'}"}, 503)
        return coordinator, None

    def _run_response(run: Any) -> tuple[Any, int]:
        if run is None:
            return jsonify({"error": "Please connect wallet first"}), 401
        body = {"run": run.to_dict(), "status": coordinator.notifier.current.to_dict()}
        if run.state == ActionState.SUCCESS:
            return jsonify(body), 201
        if not coordinator.is_connected:
            return jsonify(body), 401
        return jsonify(body), 502

    @app.route("/health")
    def health():
        return jsonify(
            {
                "status": "ok" if coordinator else "degraded",
                "voting_clients": "ready" if coordinator else "unavailable",
                "init_error": init_error,
                "wallet": coordinator.user_address if coordinator else None,
                "encryption_initialized": bool(coordinator and coordinator.encryption.is_initialized),
            }
        )

    @app.route("/encryption/initialize", methods=["POST"])
    def initialize_encryption():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        if not coord.initialize_encryption():
            return jsonify({"initialized": False, "status": coord.notifier.current.to_dict()}), 503
        return jsonify({"initialized": True})

    @app.route("/proposals", methods=["GET"])
    def list_proposals():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        snapshot = coord.store.snapshot()
        snapshot["contractAddress"] = coord.contract_address
        return jsonify(snapshot)

    @app.route("/proposals/refresh", methods=["POST"])
    def refresh_proposals():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        if coord.store.refreshing:
            return jsonify({"error": "Refresh already in progress"}), 409
        if not coord.load():
            return jsonify({"error": coord.notifier.current.message or "Failed to load data"}), 502
        return jsonify(coord.store.snapshot())

    @app.route("/stats", methods=["GET"])
    def stats():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        return jsonify(coord.store.stats().to_dict())

    @app.route("/proposals", methods=["POST"])
    def create_proposal():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        data = request.json or {}
        try:
            run = coord.create_proposal(
                str(data.get("title") or ""),
                str(data.get("description") or ""),
                data.get("voteWeight"),
            )
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        except ActionInProgress as exc:
            return jsonify({"error": str(exc)}), 409
        return _run_response(run)

    @app.route("/proposals/<proposal_id>/votes", methods=["POST"])
    def cast_vote(proposal_id: str):
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        data = request.json or {}
        try:
            run = coord.cast_vote(proposal_id, data.get("vote"))
        except LookupError:
            return jsonify({"error": "Proposal not found"}), 404
        except ActionInProgress as exc:
            return jsonify({"error": str(exc)}), 409
        return _run_response(run)

    @app.route("/proposals/<proposal_id>/decrypt", methods=["POST"])
    def decrypt(proposal_id: str):
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        if not coord.is_connected:
            return jsonify({"error": "Please connect wallet first"}), 401
        was_shown = coord.decrypted.get(proposal_id) is not None
        try:
            value = coord.toggle_decrypted(proposal_id)
        except ActionInProgress as exc:
            return jsonify({"error": str(exc)}), 409
        proposal = coord.store.get(proposal_id)
        if value is None and not was_shown:
            return jsonify({"error": coord.notifier.current.message, "votes": None}), 502
        return jsonify(
            {
                "id": proposal_id,
                "votes": value,
                "label": coord.decrypted.display_label(proposal) if proposal else None,
            }
        )

    @app.route("/availability", methods=["GET"])
    def availability():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        available = coord.check_availability()
        return jsonify({"available": available, "status": coord.notifier.current.to_dict()}), 200 if available else 502

    @app.route("/status", methods=["GET"])
    def status():
        coord, err = _coordinator_or_error()
        if err:
            return jsonify(err[0]), err[1]
        return jsonify(
            {
                "status": coord.notifier.current.to_dict(),
                "lastRun": coord.last_run.to_dict() if coord.last_run else None,
                "inFlight": sorted(coord.in_flight),
                "refreshing": coord.store.refreshing,
            }
        )

    return app


def create_app_from_env() -> Flask:
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        coordinator = build_coordinator(settings)
    except Exception as exc:  # noqa: BLE001
        logger.error("Voting clients unavailable: %s", exc)
        return build_app(None, str(exc))
    coordinator.initialize_encryption()
    coordinator.load()
    return build_app(coordinator)


if __name__ == "__main__":
    create_app_from_env().run(debug=True)
