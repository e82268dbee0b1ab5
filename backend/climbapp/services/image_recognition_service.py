"""
ClimbApp Backend — Image Recognition Service (Google Cloud Vision Product Search)
=================================================================================

What:  Adapter around Google Cloud Vision Product Search and Cloud Storage.
       Manages target sets (product sets), targets (products) with their
       reference images, and runs similar-product searches for photos.
How:   Every public operation authenticates, opens its own Vision client,
       runs the blocking SDK calls in a worker thread and closes the client
       when it is done. Calls are retried on transient errors (tenacity) and
       guarded by a circuit breaker. Protobuf messages are mapped to the
       schemas in climbapp.schemas.target before leaving this module.
Who:   Instantiated once (module singleton); used by the target routes, the
       route service (target registration) and the query flow.

Error translation:
    google NotFound          → NotFoundError          (404)
    google InvalidArgument   → ValidationError        (400)
    other Google/auth errors → ImageRecognitionError  (503), counts as failure
    circuit open             → CircuitBreakerOpenError (503)
    annotate error on search → logged, empty TargetSearchResults
"""

import asyncio
import itertools
import logging
import time
import uuid
from contextlib import asynccontextmanager, closing
from typing import AsyncIterator, Dict, Iterable, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage, vision
from google.oauth2 import service_account
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from climbapp.config import settings
from climbapp.exceptions import (
    AnnotateImageError,
    CircuitBreakerOpenError,
    ImageRecognitionError,
    NotFoundError,
    ValidationError,
)
from climbapp.schemas.target import (
    ReferenceImage,
    Target,
    TargetSearchResultEntry,
    TargetSearchResults,
)

logger = logging.getLogger(__name__)

# Errors worth another attempt: the request may succeed unchanged
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
    ConnectionError,
    TimeoutError,
)

# Errors that mean Google Cloud (or our access to it) is broken
SERVICE_ERRORS = (
    google_exceptions.GoogleAPIError,
    auth_exceptions.GoogleAuthError,
    ConnectionError,
    TimeoutError,
)


def resource_id(name: str) -> str:
    """Last segment of a resource name (projects/p/locations/l/products/<id>)."""
    return name.rsplit("/", 1)[-1]


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker protecting the Google Cloud calls.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Single-process only: counters live in memory.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout hasn't elapsed.
        """
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    recovery_time=max(int(self.recovery_timeout - elapsed), 1)
                )
            logger.info(
                "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                elapsed,
            )
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Image Recognition Service
# ══════════════════════════════════════════════════════════════════════════

class ImageRecognitionService:
    """
    Target catalog and similar-product search on Google Cloud.

    Catalog layout:
        projects/<gcp_project_id>/locations/<gcp_compute_region>
        ├── productSets/<product_set_id>          (one target set per catalog)
        └── products/<uuid>                       (one per target)
            └── referenceImages/<uuid>            → gs://<bucket>/<uuid>
    """

    def __init__(self):
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "ImageRecognitionService initialized for project=%s region=%s set=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gcp_project_id,
            settings.gcp_compute_region,
            settings.product_set_id,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    # ── Resource Names ────────────────────────────────────────────────────

    def location_path(self) -> str:
        return f"projects/{settings.gcp_project_id}/locations/{settings.gcp_compute_region}"

    def product_path(self, product_id: str) -> str:
        return f"{self.location_path()}/products/{product_id}"

    def product_set_path(self, product_set_id: str) -> str:
        return f"{self.location_path()}/productSets/{product_set_id}"

    def reference_image_uri(self, object_name: str) -> str:
        return f"gs://{settings.reference_image_bucket}/{object_name}"

    # ── Clients ───────────────────────────────────────────────────────────

    def _credentials(self):
        """
        Service account key when configured, else Application Default Credentials.

        An unreadable or malformed key file raises DefaultCredentialsError,
        which _guarded reports as a service failure.
        """
        if settings.google_credentials_file:
            try:
                return service_account.Credentials.from_service_account_file(
                    settings.google_credentials_file
                )
            except (OSError, ValueError) as e:
                raise auth_exceptions.DefaultCredentialsError(
                    f"Cannot load credentials from {settings.google_credentials_file}: {e}"
                ) from e
        return None

    def _product_search_client(self, credentials) -> vision.ProductSearchClient:
        return vision.ProductSearchClient(credentials=credentials)

    def _image_annotator_client(self, credentials) -> vision.ImageAnnotatorClient:
        return vision.ImageAnnotatorClient(credentials=credentials)

    def _storage_client(self, credentials) -> storage.Client:
        return storage.Client(project=settings.gcp_project_id, credentials=credentials)

    # ── Resilience ────────────────────────────────────────────────────────

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call(self, operation, *args, **kwargs):
        """Runs one blocking SDK call in a worker thread, retrying transient errors."""
        return await asyncio.to_thread(operation, *args, **kwargs)

    async def _settle(self, calls) -> list:
        """
        Await concurrent calls and wait for all of them to finish, then
        raise the first failure. Callers keep their client open until every
        worker thread is done with it.
        """
        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return results

    @asynccontextmanager
    async def _guarded(
        self,
        operation: str,
        resource: str = "image recognition resource",
        resource_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Circuit breaker check, timing and error translation around one operation.

        Yields a short request id used to correlate the log entries.
        """
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()
        start_time = time.time()

        try:
            yield request_id
        except google_exceptions.NotFound as e:
            self.circuit_breaker.record_success()
            raise NotFoundError(
                resource=resource,
                resource_id=resource_id,
                context={"operation": operation, "detail": e.message},
            )
        except google_exceptions.InvalidArgument as e:
            self.circuit_breaker.record_success()
            raise ValidationError(
                message=f"The image recognition service rejected the request: {e.message}",
                context={"operation": operation},
            )
        except AnnotateImageError:
            self.circuit_breaker.record_success()
            raise
        except SERVICE_ERRORS as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] %s failed after %.0fms: %s",
                request_id,
                operation,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise ImageRecognitionError(
                message="The image recognition service failed. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={
                    "request_id": request_id,
                    "operation": operation,
                    "error_type": type(e).__name__,
                },
            )
        else:
            self.circuit_breaker.record_success()
            logger.info(
                "[%s] %s completed in %.0fms",
                request_id,
                operation,
                (time.time() - start_time) * 1000,
            )

    # ── Mapping ───────────────────────────────────────────────────────────

    def _to_target(self, product, reference_images: Iterable = ()) -> Target:
        return Target(
            id=resource_id(product.name),
            display_name=product.display_name,
            description=product.description,
            category=product.product_category,
            labels={label.key: label.value for label in product.product_labels},
            reference_images=[
                ReferenceImage(id=resource_id(image.name), uri=image.uri)
                for image in reference_images
            ],
        )

    def _to_search_results(self, product_search_results) -> TargetSearchResults:
        return TargetSearchResults(
            results=[
                TargetSearchResultEntry(
                    score=result.score,
                    image=result.image,
                    target=self._to_target(result.product),
                )
                for result in product_search_results.results
            ]
        )

    # ── SDK Calls (blocking, run via _call) ───────────────────────────────

    def _create_product_set(self, client, product_set_id: str, display_name: str):
        return client.create_product_set(
            parent=self.location_path(),
            product_set=vision.ProductSet(display_name=display_name),
            product_set_id=product_set_id,
        )

    def _list_products(self, client, product_set_id: str, page: int, page_size: int) -> List:
        pager = client.list_products_in_product_set(
            name=self.product_set_path(product_set_id),
            page_size=page_size,
        )
        start = (page - 1) * page_size
        return list(itertools.islice(pager, start, start + page_size))

    def _get_product(self, client, product_id: str):
        return client.get_product(name=self.product_path(product_id))

    def _create_product(
        self,
        client,
        product_id: str,
        display_name: str,
        description: Optional[str],
        labels: Dict[str, str],
    ):
        product = vision.Product(
            display_name=display_name,
            product_category=settings.product_category,
            description=description or "",
            product_labels=[
                vision.Product.KeyValue(key=key, value=value)
                for key, value in labels.items()
            ],
        )
        return client.create_product(
            parent=self.location_path(),
            product=product,
            product_id=product_id,
        )

    def _add_product_to_product_set(self, client, product_id: str, product_set_id: str) -> None:
        client.add_product_to_product_set(
            name=self.product_set_path(product_set_id),
            product=self.product_path(product_id),
        )

    def _remove_product_from_product_set(
        self, client, product_id: str, product_set_id: str
    ) -> None:
        client.remove_product_from_product_set(
            name=self.product_set_path(product_set_id),
            product=self.product_path(product_id),
        )

    def _delete_product(self, client, product_id: str) -> None:
        client.delete_product(name=self.product_path(product_id))

    def _list_reference_images(self, client, product_name: str, page_size: int) -> List:
        return list(client.list_reference_images(parent=product_name, page_size=page_size))

    def _create_reference_image(self, client, product_id: str, reference_image_id: str):
        return client.create_reference_image(
            parent=self.product_path(product_id),
            reference_image=vision.ReferenceImage(
                uri=self.reference_image_uri(reference_image_id)
            ),
            reference_image_id=reference_image_id,
        )

    def _delete_reference_image(self, client, reference_image_name: str) -> None:
        client.delete_reference_image(name=reference_image_name)

    def _upload_file(self, storage_client, object_name: str, content: bytes, content_type: str) -> None:
        blob = storage_client.bucket(settings.reference_image_bucket).blob(object_name)
        blob.upload_from_string(content, content_type=content_type)

    def _delete_file(self, storage_client, object_name: str) -> None:
        blob = storage_client.bucket(settings.reference_image_bucket).blob(object_name)
        try:
            blob.delete()
        except google_exceptions.NotFound:
            logger.warning("Reference image object already gone: %s", object_name)

    def _detect_similar_products(self, client, image: bytes) -> TargetSearchResults:
        params = vision.ProductSearchParams(
            product_set=self.product_set_path(settings.product_set_id),
            product_categories=[settings.product_category],
            filter=settings.product_search_filter,
        )
        response = client.product_search(
            vision.Image(content=image),
            image_context=vision.ImageContext(product_search_params=params),
        )
        if response.error.message:
            raise AnnotateImageError(
                message=response.error.message,
                context={"code": response.error.code},
            )
        return self._to_search_results(response.product_search_results)

    # ── Public Operations ─────────────────────────────────────────────────

    async def create_target_set(self, target_set_id: str, display_name: str) -> None:
        """Create a product set (target set) in the configured project and region."""
        async with self._guarded("create_target_set", "target set", target_set_id):
            with self._product_search_client(self._credentials()) as client:
                await self._call(self._create_product_set, client, target_set_id, display_name)

    async def get_targets(self, target_set_id: str, page: int, page_size: int) -> List[Target]:
        """
        List one page of the targets in a target set.

        Args:
            page: 1-based page number.
            page_size: Targets per page; also the reference image page size.
        """
        async with self._guarded("get_targets", "target set", target_set_id):
            with self._product_search_client(self._credentials()) as client:
                products = await self._call(
                    self._list_products, client, target_set_id, page, page_size
                )
                reference_images = await self._settle(
                    self._call(self._list_reference_images, client, product.name, page_size)
                    for product in products
                )
        return [
            self._to_target(product, images)
            for product, images in zip(products, reference_images)
        ]

    async def get_target(self, target_id: str) -> Target:
        """Load a single target with its reference images."""
        async with self._guarded("get_target", "target", target_id):
            with self._product_search_client(self._credentials()) as client:
                product = await self._call(self._get_product, client, target_id)
                images = await self._call(
                    self._list_reference_images,
                    client,
                    product.name,
                    settings.reference_image_page_size,
                )
        return self._to_target(product, images)

    async def create_target(
        self,
        display_name: str,
        description: Optional[str],
        labels: Dict[str, str],
        image: bytes,
        content_type: str = "image/jpeg",
    ) -> Target:
        """
        Register a new target in the configured product set.

        Flow:
            1. Create the product (new UUID id, configured category, labels)
            2. Add it to the configured product set
            3. Upload the image to the reference image bucket (new UUID name)
            4. Create the reference image pointing at gs://<bucket>/<name>

        Returns:
            The target with its single reference image.
        """
        product_id = str(uuid.uuid4())
        reference_image_id = str(uuid.uuid4())

        async with self._guarded("create_target", "target", product_id) as request_id:
            credentials = self._credentials()
            with self._product_search_client(credentials) as client, \
                    closing(self._storage_client(credentials)) as storage_client:
                product = await self._call(
                    self._create_product, client, product_id, display_name, description, labels
                )
                await self._call(
                    self._add_product_to_product_set, client, product_id, settings.product_set_id
                )
                await self._call(
                    self._upload_file, storage_client, reference_image_id, image, content_type
                )
                reference_image = await self._call(
                    self._create_reference_image, client, product_id, reference_image_id
                )

        logger.info(
            "[%s] Target %s created with reference image %s",
            request_id,
            product_id,
            reference_image_id,
        )
        return self._to_target(product, [reference_image])

    async def delete_target(self, target_set_id: str, target_id: str) -> None:
        """
        Delete a target, its reference images and their stored binaries.

        Reference images are deleted concurrently; the product is then
        removed from the set and deleted.
        """
        async with self._guarded("delete_target", "target", target_id):
            credentials = self._credentials()
            with self._product_search_client(credentials) as client, \
                    closing(self._storage_client(credentials)) as storage_client:
                reference_images = await self._call(
                    self._list_reference_images,
                    client,
                    self.product_path(target_id),
                    settings.reference_image_page_size,
                )

                async def delete_reference_image(image) -> None:
                    await self._call(self._delete_reference_image, client, image.name)
                    await self._call(self._delete_file, storage_client, resource_id(image.name))

                await self._settle(delete_reference_image(image) for image in reference_images)

                await self._call(
                    self._remove_product_from_product_set, client, target_id, target_set_id
                )
                await self._call(self._delete_product, client, target_id)

    async def query_similar_targets(self, image: bytes) -> TargetSearchResults:
        """
        Search the configured product set for products similar to a photo.

        Returns:
            Search results (unordered, as the service returns them). An image
            the service cannot annotate yields an empty result set.

        Raises:
            CircuitBreakerOpenError / ImageRecognitionError on service failure.
        """
        try:
            async with self._guarded("query_similar_targets"):
                with self._image_annotator_client(self._credentials()) as client:
                    return await self._call(self._detect_similar_products, client, image)
        except AnnotateImageError as e:
            logger.error(
                "The google cloud image recognition service threw an error: %s",
                e.message,
            )
            return TargetSearchResults(results=[])

    async def health_check(self) -> bool:
        """
        Check that Vision Product Search is reachable with our credentials.

        How: Fetches the configured product set (no search quota used).
        """
        try:
            with self._product_search_client(self._credentials()) as client:
                await asyncio.to_thread(
                    client.get_product_set,
                    name=self.product_set_path(settings.product_set_id),
                )
            return True
        except google_exceptions.NotFound:
            logger.warning("Configured product set %s not found", settings.product_set_id)
            return True
        except Exception as e:
            logger.warning("Image recognition health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state shared by all requests
image_recognition_service = ImageRecognitionService()
