import json
import pytest
from botocore.exceptions import ClientError

from tagsearch.labeling import worker, handler
from tagsearch.storage.keys import build_storage_key, image_id_from_key, sanitize_file_name
from tagsearch.exceptions import (
    MalformedEventException,
    LabelingServiceException,
    PersistenceException,
)


def s3_event(*keys, bucket="image-search-bucket"):
    return {"Records": [{"s3": {"bucket": {"name": bucket}, "object": {"key": key}}} for key in keys]}


def rekognition_error():
    return ClientError({"Error": {"Code": "InvalidImageFormatException", "Message": "bad"}}, "DetectLabels")


def conditional_error():
    return ClientError({"Error": {"Code": "ConditionalCheckFailedException", "Message": "no"}}, "UpdateItem")


# ------------------------------
# storage keys
# ------------------------------

def test_sanitize_file_name():
    assert sanitize_file_name("my  summer\tpic.jpg") == "my_summer_pic.jpg"


def test_key_round_trip():
    key = build_storage_key("1234-abcd", "beach day.png")
    assert key == "uploads/1234-abcd/beach_day.png"
    assert image_id_from_key(key) == "1234-abcd"


@pytest.mark.parametrize(
    "key, expected",
    [
        ("other/abc.png", "abc"),
        ("abc.tar.gz", "abc"),
        ("uploads/only.png", "only"),
    ],
)
def test_image_id_from_key_falls_back_to_stem(key, expected):
    assert image_id_from_key(key) == expected


def test_image_id_from_key_empty():
    with pytest.raises(MalformedEventException):
        image_id_from_key("uploads/")


# ------------------------------
# process_labels
# ------------------------------

def test_process_labels_example():
    labels = [
        {"Name": "Cat", "Confidence": 95},
        {"Name": "CAT", "Confidence": 60},
        {"Name": "Dog", "Confidence": 85},
    ]
    assert worker.process_labels(labels, min_confidence=80) == ["cat", "dog"]


def test_process_labels_dedup_keeps_first_seen_order():
    labels = [
        {"Name": "Sky", "Confidence": 99},
        {"Name": "Beach", "Confidence": 90},
        {"Name": "SKY", "Confidence": 98},
    ]
    assert worker.process_labels(labels, min_confidence=80) == ["sky", "beach"]


def test_process_labels_threshold_is_inclusive():
    labels = [{"Name": "Edge", "Confidence": 80.0}, {"Name": "Below", "Confidence": 79.99}]
    assert worker.process_labels(labels, min_confidence=80) == ["edge"]


def test_process_labels_truncates():
    labels = [{"Name": f"Label{i}", "Confidence": 99} for i in range(30)]
    tags = worker.process_labels(labels, min_confidence=80, max_tags=20)
    assert tags == [f"label{i}" for i in range(20)]


def test_process_labels_skips_incomplete_entries():
    labels = [{"Name": "", "Confidence": 99}, {"Confidence": 99}, {"Name": "Tree"}, {"Name": "Leaf", "Confidence": 90}]
    assert worker.process_labels(labels, min_confidence=80) == ["leaf"]


def test_process_labels_uses_settings_defaults():
    labels = [{"Name": f"L{i}", "Confidence": 81} for i in range(25)] + [{"Name": "Low", "Confidence": 79}]
    assert len(worker.process_labels(labels)) == 20


# ------------------------------
# parse_event
# ------------------------------

def test_parse_event_decodes_keys():
    objects = worker.parse_event(s3_event("uploads/abc/my+pic%281%29.png"))
    assert objects == [("image-search-bucket", "uploads/abc/my pic(1).png")]


@pytest.mark.parametrize(
    "event",
    [
        None,
        [],
        {},
        {"Records": []},
        {"Records": [{"s3": {"bucket": {"name": "b"}}}]},
        {"Records": [{"s3": {"bucket": {}, "object": {"key": "k"}}}]},
        {"Records": [{"s3": {"bucket": {"name": ""}, "object": {"key": "k"}}}]},
        {"Records": ["nope"]},
    ],
)
def test_parse_event_malformed(event):
    with pytest.raises(MalformedEventException):
        worker.parse_event(event)


# ------------------------------
# label_object with mocked services
# ------------------------------

def test_label_object_completes_record(mocker):
    mock_db = mocker.Mock()
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = [{"Name": "Beach", "Confidence": 99.1}]

    result = worker.label_object(mock_db, mock_rek, "bucket", "uploads/id-1/beach.png")

    assert result == {"imageId": "id-1", "storageKey": "uploads/id-1/beach.png", "tags": ["beach"]}
    mock_rek.detect_labels.assert_called_once_with(
        "bucket", "uploads/id-1/beach.png", max_labels=100, min_confidence=80.0
    )
    mock_db.complete_record.assert_called_once_with("id-1", ["beach"])
    mock_db.fail_record.assert_not_called()


def test_label_object_labeling_failure_marks_failed(mocker):
    mock_db = mocker.Mock()
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.side_effect = rekognition_error()

    with pytest.raises(LabelingServiceException):
        worker.label_object(mock_db, mock_rek, "bucket", "uploads/id-2/x.png")

    mock_db.fail_record.assert_called_once_with("id-2")
    mock_db.complete_record.assert_not_called()


def test_label_object_failure_on_terminal_record_keeps_status(mocker):
    mock_db = mocker.Mock()
    mock_db.fail_record.side_effect = conditional_error()
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.side_effect = rekognition_error()

    with pytest.raises(LabelingServiceException):
        worker.label_object(mock_db, mock_rek, "bucket", "uploads/id-3/x.png")


def test_label_object_persistence_failure(mocker):
    mock_db = mocker.Mock()
    mock_db.complete_record.side_effect = conditional_error()
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = []

    with pytest.raises(PersistenceException):
        worker.label_object(mock_db, mock_rek, "bucket", "uploads/id-4/x.png")


def test_handle_event_processes_every_record(mocker):
    mock_db = mocker.Mock()
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = [{"Name": "Tree", "Confidence": 90}]

    results = worker.handle_event(s3_event("uploads/a/1.png", "uploads/b/2.png"), mock_db, mock_rek)

    assert [r["imageId"] for r in results] == ["a", "b"]
    assert mock_db.complete_record.call_count == 2


# ------------------------------
# status transitions against moto
# ------------------------------

def pending_item(image_id):
    return {
        "imageId": image_id,
        "storageKey": f"uploads/{image_id}/x.png",
        "fileName": "x.png",
        "fileType": "image/png",
        "status": "PENDING",
        "createdAt": "2024-01-01T00:00:00+00:00",
    }


def test_failed_record_never_reverts(aws, mocker):
    db, _ = aws
    db.create_record(pending_item("img-1"))
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.side_effect = rekognition_error()

    with pytest.raises(LabelingServiceException):
        worker.handle_event(s3_event("uploads/img-1/x.png"), db, mock_rek)
    assert db.get_record("img-1")["status"] == "FAILED"

    # A redelivered event that now labels fine cannot revive it
    mock_rek.detect_labels.side_effect = None
    mock_rek.detect_labels.return_value = [{"Name": "Cat", "Confidence": 99}]
    with pytest.raises(PersistenceException):
        worker.handle_event(s3_event("uploads/img-1/x.png"), db, mock_rek)
    assert db.get_record("img-1")["status"] == "FAILED"


def test_completed_record_is_not_failed_by_later_error(aws, mocker):
    db, _ = aws
    db.create_record(pending_item("img-2"))
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = [{"Name": "Cat", "Confidence": 99}]
    worker.handle_event(s3_event("uploads/img-2/x.png"), db, mock_rek)

    mock_rek.detect_labels.side_effect = rekognition_error()
    with pytest.raises(LabelingServiceException):
        worker.handle_event(s3_event("uploads/img-2/x.png"), db, mock_rek)

    record = db.get_record("img-2")
    assert record["status"] == "COMPLETED"
    assert record["keywords"] == ["cat"]


def test_duplicate_trigger_is_idempotent(aws, mocker):
    db, _ = aws
    db.create_record(pending_item("img-3"))
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = [{"Name": "Cat", "Confidence": 99}]

    worker.handle_event(s3_event("uploads/img-3/x.png"), db, mock_rek)
    worker.handle_event(s3_event("uploads/img-3/x.png"), db, mock_rek)

    record = db.get_record("img-3")
    assert record["status"] == "COMPLETED"
    assert record["keywords"] == ["cat"]


def test_worker_does_not_create_unknown_records(aws, mocker):
    db, _ = aws
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = [{"Name": "Cat", "Confidence": 99}]

    with pytest.raises(PersistenceException):
        worker.handle_event(s3_event("uploads/ghost/x.png"), db, mock_rek)
    assert db.get_record("ghost") is None


def test_create_record_only_once(aws):
    db, _ = aws
    db.create_record(pending_item("img-4"))
    with pytest.raises(ClientError):
        db.create_record(pending_item("img-4"))


# ------------------------------
# lambda_handler
# ------------------------------

def test_lambda_handler(mocker):
    mock_db = mocker.Mock()
    mock_rek = mocker.Mock()
    mock_rek.detect_labels.return_value = [{"Name": "Dog", "Confidence": 97}]
    mocker.patch.object(handler, "get_db_service", return_value=mock_db)
    mocker.patch.object(handler, "get_rekognition_service", return_value=mock_rek)

    resp = handler.lambda_handler(s3_event("uploads/z/dog.png"), None)

    assert resp["statusCode"] == 200
    body = json.loads(resp["body"])
    assert body["images"] == [{"imageId": "z", "storageKey": "uploads/z/dog.png", "tags": ["dog"]}]


def test_lambda_handler_propagates_malformed_event(mocker):
    mocker.patch.object(handler, "get_db_service", return_value=mocker.Mock())
    mocker.patch.object(handler, "get_rekognition_service", return_value=mocker.Mock())

    with pytest.raises(MalformedEventException):
        handler.lambda_handler({"Records": []}, None)
