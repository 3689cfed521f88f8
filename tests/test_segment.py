import json

import pytest

from xrayexport.aws import (
    AWS_OPERATION_ATTRIBUTE,
    AWS_REQUEST_ID_ATTRIBUTE,
    AWS_TABLE_NAME_ATTRIBUTE,
    ORIGIN_EC2,
    ORIGIN_ECS,
)
from xrayexport.segment import (
    DEFAULT_SEGMENT_NAME,
    Segment,
    convert_to_amazon_span_id,
    convert_to_amazon_trace_id,
    determine_aws_origin,
    encode_document,
    fix_annotation_key,
    fix_segment_name,
    make_annotations,
    make_segment,
    make_segment_document,
    timestamp_to_float_seconds,
)
from xrayexport.spans import (
    ATTRIBUTE_CLOUD_ACCOUNT,
    ATTRIBUTE_CLOUD_PROVIDER,
    ATTRIBUTE_CLOUD_REGION,
    ATTRIBUTE_CLOUD_ZONE,
    ATTRIBUTE_COMPONENT,
    ATTRIBUTE_CONTAINER_IMAGE,
    ATTRIBUTE_CONTAINER_NAME,
    ATTRIBUTE_CONTAINER_TAG,
    ATTRIBUTE_DB_INSTANCE,
    ATTRIBUTE_DB_STATEMENT,
    ATTRIBUTE_DB_TYPE,
    ATTRIBUTE_DB_URL,
    ATTRIBUTE_DB_USER,
    ATTRIBUTE_ENDUSER_ID,
    ATTRIBUTE_HTTP_CLIENT_IP,
    ATTRIBUTE_HTTP_HOST,
    ATTRIBUTE_HTTP_METHOD,
    ATTRIBUTE_HTTP_SCHEME,
    ATTRIBUTE_HTTP_STATUS_CODE,
    ATTRIBUTE_HTTP_STATUS_TEXT,
    ATTRIBUTE_HTTP_TARGET,
    ATTRIBUTE_HTTP_URL,
    ATTRIBUTE_HTTP_USER_AGENT,
    ATTRIBUTE_K8S_CLUSTER,
    ATTRIBUTE_K8S_DEPLOYMENT,
    ATTRIBUTE_K8S_NAMESPACE,
    ATTRIBUTE_K8S_POD,
    ATTRIBUTE_MESSAGE_ID,
    ATTRIBUTE_MESSAGE_TYPE,
    ATTRIBUTE_MESSAGE_UNCOMPRESSED_SIZE,
    ATTRIBUTE_NET_PEER_IP,
    ATTRIBUTE_NET_PEER_NAME,
    ATTRIBUTE_NET_PEER_PORT,
    ATTRIBUTE_SERVICE_NAME,
    ATTRIBUTE_SERVICE_VERSION,
    COMPONENT_TYPE_GRPC,
    COMPONENT_TYPE_HTTP,
    STATUS_INTERNAL,
    Resource,
    Span,
    SpanKind,
    Status,
    TimeEvent,
    Timestamp,
    new_segment_id,
    new_trace_id,
)


def default_resource_labels():
    return {
        ATTRIBUTE_SERVICE_NAME: "signup_aggregator",
        ATTRIBUTE_SERVICE_VERSION: "semver:1.1.4",
        ATTRIBUTE_CONTAINER_NAME: "signup_aggregator",
        ATTRIBUTE_CONTAINER_IMAGE: "otel/signupaggregator",
        ATTRIBUTE_CONTAINER_TAG: "v1",
        ATTRIBUTE_K8S_CLUSTER: "production",
        ATTRIBUTE_K8S_NAMESPACE: "default",
        ATTRIBUTE_K8S_DEPLOYMENT: "signup_aggregator",
        ATTRIBUTE_K8S_POD: "signup_aggregator-x82ufje83",
        ATTRIBUTE_CLOUD_PROVIDER: "aws",
        ATTRIBUTE_CLOUD_ACCOUNT: "123456789",
        ATTRIBUTE_CLOUD_REGION: "us-east-1",
        ATTRIBUTE_CLOUD_ZONE: "us-east-1c",
    }


def construct_span(kind, parent_span_id, name, code, message, attributes, labels):
    end = Timestamp.now()
    start = Timestamp.from_nanos(end.to_nanos() - 215_000_000)
    return Span(
        trace_id=new_trace_id(),
        span_id=new_segment_id(),
        parent_span_id=parent_span_id,
        name=name,
        kind=kind,
        start_time=start,
        end_time=end,
        status=Status(code=code, message=message),
        attributes=dict(attributes),
        resource=Resource(type="container", labels=labels),
    )


def construct_client_span(parent_span_id, name, code, message, attributes, labels):
    return construct_span(SpanKind.CLIENT, parent_span_id, name, code, message, attributes, labels)


def construct_server_span(parent_span_id, name, code, message, attributes, labels):
    return construct_span(SpanKind.SERVER, parent_span_id, name, code, message, attributes, labels)


def sent_message_events(timestamp):
    return [
        TimeEvent(
            time=timestamp,
            annotation={
                ATTRIBUTE_MESSAGE_TYPE: "SENT",
                ATTRIBUTE_MESSAGE_ID: 1,
                ATTRIBUTE_MESSAGE_UNCOMPRESSED_SIZE: 7480,
            },
        )
    ]


def grpc_attributes(span_name):
    return {
        ATTRIBUTE_COMPONENT: COMPONENT_TYPE_GRPC,
        ATTRIBUTE_HTTP_METHOD: "GET",
        ATTRIBUTE_HTTP_SCHEME: "ipv6",
        ATTRIBUTE_NET_PEER_IP: "2607:f8b0:4000:80c::2004",
        ATTRIBUTE_NET_PEER_PORT: "9443",
        ATTRIBUTE_HTTP_TARGET: span_name,
    }


def test_client_span_with_grpc_component():
    span_name = "platformapi.widgets.searchWidgets"
    span = construct_client_span(
        None, span_name, 0, "OK", grpc_attributes(span_name), default_resource_labels()
    )
    span.time_events = sent_message_events(span.start_time)

    document = make_segment_document(span_name, span)

    assert span_name in document
    assert json.loads(document)["name"] == span_name


def test_client_span_with_aws_sdk_client():
    span_name = "AmazonDynamoDB.getItem"
    user = "testingT"
    attributes = {
        ATTRIBUTE_COMPONENT: COMPONENT_TYPE_HTTP,
        ATTRIBUTE_HTTP_METHOD: "POST",
        ATTRIBUTE_HTTP_SCHEME: "https",
        ATTRIBUTE_HTTP_HOST: "dynamodb.us-east-1.amazonaws.com",
        ATTRIBUTE_HTTP_TARGET: "/",
        AWS_OPERATION_ATTRIBUTE: "GetItem",
        AWS_REQUEST_ID_ATTRIBUTE: "18BO1FEPJSSAOGNJEDPTPCMIU7VV4KQNSO5AEMVJF66Q9ASUAAJG",
        AWS_TABLE_NAME_ATTRIBUTE: "otel-dev-Testing",
    }
    span = construct_client_span(
        new_segment_id(), span_name, 0, "OK", attributes, default_resource_labels()
    )

    document = make_segment_document(span_name, span)

    assert span_name in document
    assert user not in document
    assert ATTRIBUTE_COMPONENT not in document


def test_server_span_with_internal_server_error():
    span_name = "/api/locations"
    error_message = "java.lang.NullPointerException"
    user_agent = "PostmanRuntime/7.21.0"
    enduser = "go.tester@example.com"
    attributes = {
        ATTRIBUTE_COMPONENT: COMPONENT_TYPE_HTTP,
        ATTRIBUTE_HTTP_METHOD: "POST",
        ATTRIBUTE_HTTP_URL: "https://api.example.org/api/locations",
        ATTRIBUTE_HTTP_TARGET: "/api/locations",
        ATTRIBUTE_HTTP_STATUS_CODE: 500,
        ATTRIBUTE_HTTP_STATUS_TEXT: "java.lang.NullPointerException",
        ATTRIBUTE_HTTP_USER_AGENT: user_agent,
        ATTRIBUTE_ENDUSER_ID: enduser,
    }
    span = construct_server_span(
        new_segment_id(), span_name, STATUS_INTERNAL, error_message, attributes,
        default_resource_labels(),
    )
    span.time_events = sent_message_events(span.start_time)

    segment = make_segment(span_name, span)

    assert segment.cause is not None
    assert segment.name == span_name
    assert segment.fault is True
    assert segment.user == enduser
    document = encode_document(segment)
    assert span_name in document
    assert error_message in document
    assert user_agent in document
    assert enduser in document


def test_client_span_with_db_component():
    span_name = "call update_user_preference( ?, ?, ? )"
    enterprise_app_id = "25F2E73B-4769-4C79-9DF3-7EBE85D571EA"
    attributes = {
        ATTRIBUTE_COMPONENT: "db",
        ATTRIBUTE_DB_TYPE: "sql",
        ATTRIBUTE_DB_INSTANCE: "customers",
        ATTRIBUTE_DB_STATEMENT: span_name,
        ATTRIBUTE_DB_USER: "userprefsvc",
        ATTRIBUTE_DB_URL: "mysql://db.dev.example.com:3306",
        ATTRIBUTE_NET_PEER_NAME: "db.dev.example.com",
        ATTRIBUTE_NET_PEER_PORT: "3306",
        "enterprise.app.id": enterprise_app_id,
    }
    span = construct_client_span(None, span_name, 0, "OK", attributes, default_resource_labels())

    segment = make_segment(span_name, span)

    assert segment.sql is not None
    assert segment.sql.url == "mysql://db.dev.example.com:3306/customers"
    assert segment.service is not None
    assert segment.aws is not None
    assert segment.annotations is not None
    assert segment.annotations["enterprise_app_id"] == enterprise_app_id
    assert segment.cause is None
    assert segment.http is None
    assert segment.name == span_name
    assert segment.fault is False
    assert segment.error is False
    assert segment.namespace == ""
    document = encode_document(segment)
    assert span_name in document
    assert enterprise_app_id in document


def test_span_with_invalid_trace_id():
    span_name = "platformapi.widgets.searchWidgets"
    span = construct_client_span(
        None, span_name, 0, "OK", grpc_attributes(span_name), default_resource_labels()
    )
    span.time_events = sent_message_events(span.start_time)
    span.trace_id = bytes([0x11]) + span.trace_id[1:]

    document = make_segment_document(span_name, span)

    assert span_name in document
    assert "1-11" not in document


def test_remote_namespace_and_parent_id():
    parent = bytes.fromhex("0102030405060708")
    span = construct_client_span(parent, "op", 0, "OK", {}, default_resource_labels())

    segment = make_segment("op", span)

    assert segment.namespace == "remote"
    assert segment.parent_id == "0102030405060708"
    assert segment.origin == ORIGIN_ECS
    assert len(segment.trace_id) == 35


def test_empty_name_falls_back_to_fixed_span_name():
    span = construct_client_span(None, "<>", 0, "OK", {}, default_resource_labels())
    assert make_segment("", span).name == DEFAULT_SEGMENT_NAME


def test_fix_segment_name():
    valid_name = "EP @ test_15.testing-d\u00F6main.org#GO"
    assert fix_segment_name(valid_name) == valid_name
    assert fix_segment_name("<subDomain>.example.com") == "subDomain.example.com"
    assert fix_segment_name("<>") == DEFAULT_SEGMENT_NAME


def test_fix_segment_name_truncates_long_names():
    assert fix_segment_name("a" * 250) == "a" * 200


def test_fix_annotation_key():
    assert fix_annotation_key("Key_1") == "Key_1"
    assert fix_annotation_key("Key@1") == "Key_1"


def test_convert_to_amazon_trace_id_keeps_recent_epoch():
    now = 0x5E2CE300
    trace_id = bytes.fromhex("5e2ce300") + bytes(range(12))
    assert convert_to_amazon_trace_id(trace_id, now) == "1-5e2ce300-000102030405060708090a0b"


def test_convert_to_amazon_trace_id_replaces_old_epoch():
    now = 0x5E2CE300 + 40 * 86400
    trace_id = bytes.fromhex("5e2ce300") + bytes(range(12))
    result = convert_to_amazon_trace_id(trace_id, now)
    assert int(result[2:10], 16) == now
    assert result.endswith("-000102030405060708090a0b")


def test_convert_to_amazon_trace_id_rejects_short_id():
    with pytest.raises(ValueError):
        convert_to_amazon_trace_id(b"\x01\x02", 0)


def test_convert_to_amazon_span_id():
    assert convert_to_amazon_span_id(None) == ""
    assert convert_to_amazon_span_id(bytes(16)) == ""
    assert convert_to_amazon_span_id(bytes.fromhex("0102030405060708")) == "0102030405060708"


def test_timestamp_to_float_seconds():
    assert timestamp_to_float_seconds(Timestamp(10, 500_000_000), None) == 10.5
    assert timestamp_to_float_seconds(Timestamp(20, 250_000_000), Timestamp(10, 0)) == 10.25


def test_determine_aws_origin():
    assert determine_aws_origin(None) == ORIGIN_EC2
    assert determine_aws_origin(Resource(labels={})) == ORIGIN_EC2
    assert determine_aws_origin(Resource(labels={ATTRIBUTE_CONTAINER_NAME: "c"})) == ORIGIN_ECS


def test_make_annotations():
    attributes = {ATTRIBUTE_COMPONENT: "http", ATTRIBUTE_ENDUSER_ID: "someone", "a.b": "c"}
    assert make_annotations(attributes) == ("someone", {"a_b": "c"})
    assert make_annotations({}) == ("", None)


def test_segment_to_dict_omits_empty_fields():
    segment = Segment(id="abc", name="n", start_time=1.0)
    assert segment.to_dict() == {"id": "abc", "name": "n", "start_time": 1.0}


def test_encode_document_escapes_html_and_ends_with_newline():
    assert encode_document({"k": "<a>&"}) == '{"k":"\\u003ca\\u003e\\u0026"}\n'


def test_encode_document_round_trip():
    span = construct_server_span(
        None,
        "/users/junit",
        0,
        "OK",
        {
            ATTRIBUTE_COMPONENT: COMPONENT_TYPE_HTTP,
            ATTRIBUTE_HTTP_METHOD: "GET",
            ATTRIBUTE_HTTP_URL: "https://api.example.com/users/junit",
            ATTRIBUTE_HTTP_CLIENT_IP: "192.168.15.32",
            ATTRIBUTE_HTTP_STATUS_CODE: 200,
        },
        default_resource_labels(),
    )
    segment = make_segment("/users/junit", span)
    document = encode_document(segment)
    assert document.count("\n") == 1
    assert json.loads(document) == segment.to_dict()