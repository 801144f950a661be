# app.py (Flask API: metadata upload, transaction building, fee verification)

import functools
import logging
import time
import traceback

from flask import Flask, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import LAMPORTS_PER_SOL, Settings
from .descriptor import (
    metadata_descriptor_from_json,
    parse_address,
    short,
    token_descriptor_from_json,
    validate_metadata_uri,
)
from .errors import (
    NetworkError,
    PaymentMismatchError,
    RateLimitExceeded,
    TokenForgeError,
    ValidationError,
)
from .metadata import MetadataPublisher
from .models import Payment, db
from .payment import PaymentVerifier, validate_signature
from .rate_limit import SlidingWindowRateLimiter
from .rpc import RpcPool, SolanaLedger
from .storage import PinataStorage
from .token_builder import TransactionBuilder

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level="INFO"):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def create_app(settings=None, storage=None, ledger=None, rate_limiter=None, sleep=time.sleep):
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    # --- App & Database Setup ---
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    app.config["SQLALCHEMY_DATABASE_URI"] = settings.database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    db.init_app(app)
    with app.app_context():
        db.create_all()

    # --- Collaborators ---
    if storage is None:
        storage = PinataStorage.from_settings(settings)
    if ledger is None:
        pool = RpcPool(settings.rpc_urls, timeout=settings.rpc_timeout, backoff=settings.fallback_backoff, sleep=sleep)
        ledger = SolanaLedger(pool)
    if rate_limiter is None:
        rate_limiter = SlidingWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window)

    publisher = MetadataPublisher(storage)
    builder = TransactionBuilder(ledger)
    verifier = PaymentVerifier(
        ledger,
        settings.fee_recipient,
        settings.fee_lamports,
        tolerance=settings.fee_tolerance,
        backoff=settings.verify_backoff,
        sleep=sleep,
    )
    app.extensions["tokenforge"] = {
        "settings": settings,
        "publisher": publisher,
        "builder": builder,
        "verifier": verifier,
        "rate_limiter": rate_limiter,
    }

    def rate_limited(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            client_key = request.remote_addr or "unknown"
            if not rate_limiter.allow(client_key):
                logger.warning(f"Rate limit exceeded for {client_key} on {request.path}")
                raise RateLimitExceeded()
            return view(*args, **kwargs)

        return wrapper

    def find_or_verify_payment(signature, payer):
        """Stored record for ``signature`` if we already verified it, otherwise poll the ledger."""
        existing = Payment.query.filter_by(signature=signature).first()
        if existing is not None:
            if existing.payer != payer:
                raise PaymentMismatchError(f"Payer does not match. Expected {payer}, got {existing.payer}")
            logger.info(f"Payment {short(signature, 20)} already verified, using stored record")
            return existing

        record = verifier.verify(signature, payer)
        payment = Payment.from_record(record)
        db.session.add(payment)
        try:
            db.session.commit()
        except IntegrityError:
            # a concurrent request stored the same signature first
            db.session.rollback()
            payment = Payment.query.filter_by(signature=signature).first()
        return payment

    def redeem_payment(payment, mint):
        """Claim ``payment`` for ``mint`` before any work is done.

        True when this request made the claim, False when it was already
        claimed for the same mint (a retry). Any other mint is rejected.
        """
        payment_id = payment.id
        if Payment.claim(payment_id, mint):
            return True
        current = db.session.get(Payment, payment_id)
        if current.redeemed_mint != mint:
            raise PaymentMismatchError("This payment has already been used to create another token")
        return False

    # --- UPLOAD METADATA ENDPOINT ---
    @app.route("/api/upload-metadata", methods=["POST"])
    @rate_limited
    def upload_metadata():
        descriptor = metadata_descriptor_from_json(_json_body())
        result = publisher.publish(descriptor)
        return jsonify({
            "success": True,
            "metadataUrl": result.metadata_uri,
            "imageUrl": result.image_url,
            "warnings": result.warnings,
        })

    # --- BUILD TRANSACTION ENDPOINT ---
    @app.route("/api/build-transaction", methods=["POST"])
    @rate_limited
    def build_transaction():
        data = _json_body()
        descriptor = token_descriptor_from_json(data)
        metadata_uri = validate_metadata_uri(data.get("metadataURI") or data.get("metadataUrl"))
        serialized = builder.build(descriptor, metadata_uri)
        return jsonify({"success": True, "serializedTransaction": serialized})

    # --- CREATE TOKEN ENDPOINT (upload + build, fee-gated when configured) ---
    @app.route("/api/create-token", methods=["POST"])
    @rate_limited
    def create_token():
        data = _json_body()
        descriptor = token_descriptor_from_json(data, with_metadata_fields=True)

        claimed_payment_id = None
        if settings.fee_required:
            signature = validate_signature(data.get("paymentSignature"))
            payment = find_or_verify_payment(signature, descriptor.recipient_address)
            if redeem_payment(payment, descriptor.mint_address):
                claimed_payment_id = payment.id

        try:
            result = publisher.publish(descriptor)
            serialized = builder.build(descriptor, result.metadata_uri)
        except Exception:
            if claimed_payment_id is not None:
                db.session.rollback()
                Payment.release(claimed_payment_id, descriptor.mint_address)
                logger.info(f"Released payment claim for mint={short(descriptor.mint_address)}")
            raise

        logger.info(f"Token transaction ready for {descriptor.symbol} mint={short(descriptor.mint_address)}")
        return jsonify({
            "success": True,
            "serializedTransaction": serialized,
            "metadataUrl": result.metadata_uri,
            "imageUrl": result.image_url,
            "warnings": result.warnings,
        })

    # --- VERIFY PAYMENT ENDPOINT ---
    @app.route("/api/verify-payment", methods=["POST"])
    @rate_limited
    def verify_payment():
        data = _json_body()
        signature = validate_signature(data.get("signature"))
        payer = str(parse_address(data.get("expectedPayer") or data.get("payer"), "expectedPayer"))
        payment = find_or_verify_payment(signature, payer)
        return jsonify({
            "success": True,
            "message": "Payment verified.",
            "data": payment.to_record().to_dict(),
        })

    # --- LEDGER HELPERS FOR THE CLIENT ---
    @app.route("/api/balance", methods=["POST"])
    @rate_limited
    def get_balance():
        data = _json_body()
        owner = parse_address(data.get("publicKey"), "publicKey")
        balance = ledger.get_balance(owner)
        return jsonify({"balance": balance, "balanceSOL": balance / LAMPORTS_PER_SOL})

    @app.route("/api/blockhash", methods=["GET"])
    @rate_limited
    def get_blockhash():
        latest = ledger.latest_blockhash()
        return jsonify({
            "blockhash": str(latest.blockhash),
            "lastValidBlockHeight": latest.last_valid_block_height,
        })

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    # --- Error responses ---
    @app.errorhandler(TokenForgeError)
    def handle_tokenforge_error(e):
        if e.status_code >= 500:
            logger.error(f"{request.path} failed: {e}")
        else:
            logger.info(f"{request.path} rejected ({e.error_type}): {e}")
        body = {
            "success": False,
            "error": e.message if settings.dev_mode else e.public_message,
            "errorType": e.error_type,
        }
        if settings.dev_mode:
            if isinstance(e, NetworkError):
                body["failures"] = [{"endpoint": endpoint, "reason": reason} for endpoint, reason in e.failures]
            body["stack"] = traceback.format_exception(type(e), e, e.__traceback__)
        return jsonify(body), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        if isinstance(e, HTTPException):
            return jsonify({"success": False, "error": e.description, "errorType": e.name}), e.code
        logger.exception(f"Unexpected error on {request.path}")
        body = {"success": False, "error": "An unknown error occurred.", "errorType": "InternalError"}
        if settings.dev_mode:
            body["error"] = str(e)
            body["stack"] = traceback.format_exception(type(e), e, e.__traceback__)
        return jsonify(body), 500

    return app


# --- Main Server Run ---
if __name__ == "__main__":
    settings = Settings.from_env()
    create_app(settings).run(debug=settings.dev_mode)
