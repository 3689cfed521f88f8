# xrayexport

`xrayexport` turns trace spans into AWS X-Ray segment documents. It hands
them in batches to a `PutTraceSegments` client that you supply.

## Modules

| Module | Contents |
|---|---|
| `xrayexport.spans` | The span model: `Span`, `Status`, `SpanKind`, `Resource`, `Timestamp`, `TimeEvent`. Also attribute-name constants, `new_trace_id`, `new_segment_id` and `http_status_from_status_code`. |
| `xrayexport.segment` | `Segment`, `make_segment`, `make_segment_document`, `encode_document`, and the id, time, name and annotation helpers. |
| `xrayexport.httpdata` | `make_http` and the `HTTPData`, `RequestData` and `ResponseData` classes. Also URL assembly for client and server spans. |
| `xrayexport.cause` | `make_cause` and `is_client_error`, plus the `CauseData`, `ExceptionData` and `StackFrame` classes. |
| `xrayexport.aws` | `make_aws` and the `AWSData`, `EC2Metadata`, `ECSMetadata` and `BeanstalkMetadata` classes. |
| `xrayexport.service` | `make_service` and `ServiceData`. |
| `xrayexport.sql` | `make_sql` and `SQLData`. |
| `xrayexport.config` | `Config`, the exporter settings. |
| `xrayexport.conn` | Region resolution, STS endpoint helpers, proxy parsing, and the `ConnAttr` interface. |
| `xrayexport.exporter` | `TraceExporter`, `Factory`, the `XRayClient` interface, and the request and result types. |

## Installation

```
pip install .
```

No third-party packages are needed. To run the tests:

```
pip install .[test]
pytest
```

## Building a segment document

```python
from xrayexport.spans import Span, SpanKind, Status
from xrayexport.segment import make_segment, make_segment_document

span = Span(
    name="/users/junit",
    kind=SpanKind.SERVER,
    status=Status(code=0, message="OK"),
    attributes={
        "component": "http",
        "http.method": "GET",
        "http.url": "https://api.example.com/users/junit",
        "http.status_code": 200,
    },
)
segment = make_segment("/users/junit", span)
document = make_segment_document("/users/junit", span)
```

### Segment fields

`make_segment` fills in the segment as follows:

- **Trace id.** In the form `1-<epoch>-<identifier>`. An epoch older than 28 days, or more than 5 minutes in the future, is replaced by the current time.
- **Span and parent ids.** 16 hex digits. A missing or all-zero id gives an empty string.
- **Namespace.** Set to `"remote"` when the span has a parent id.
- **HTTP data.** Built only for spans whose `component` is `http` or `grpc` and that carry an `http.method`.
- **Error, fault and throttle flags, and cause.** Taken from the span status. A status that maps to HTTP 4xx is an error; any other non-zero status is a fault.
- **Origin.** `AWS::ECS::Container` when the resource has a `container.name` label, otherwise `AWS::EC2::Instance`.
- **AWS data.** Built from the resource labels for EC2, ECS and Elastic Beanstalk, together with the `aws.*` span attributes.
- **Service version.** Taken from `service.version`, otherwise from `container.image.tag`.
- **SQL data.** Built from the `db.*` attributes of spans that are neither HTTP nor gRPC.
- **User and annotations.** The user comes from `enduser.id`. The remaining attributes become annotations. Invalid characters in annotation keys are replaced with `_`.

If the name passed to `make_segment` is empty, the span's own name is used after `fix_segment_name`. That function removes characters X-Ray rejects and limits the name to 200 bytes. A name left with no characters becomes `"span"`.

`encode_document` writes compact JSON followed by a newline. It escapes `<`, `>` and `&` as `\u003c`, `\u003e` and `\u0026`.

## Exporting spans

You supply two objects:

- An `XRayClient`, which posts a `PutTraceSegmentsRequest` to X-Ray.
- A `ConnAttr`, which supplies sessions and the EC2 region.

```python
from xrayexport.conn import ConnAttr
from xrayexport.exporter import Factory, PutTraceSegmentsResult, XRayClient


class MyClient(XRayClient):
    def put_trace_segments(self, request):
        ...  # post request.trace_segment_documents
        return PutTraceSegmentsResult()


class MyConn(ConnAttr):
    def new_aws_session(self, role_arn, region):
        return {"region": region, "role_arn": role_arn}

    def get_ec2_region(self, session):
        return "us-east-1"


factory = Factory()
config = factory.create_default_config()
config.region = "eu-west-1"
exporter = factory.create_trace_exporter(config, MyClient(), MyConn())
dropped = exporter.consume_trace_data(spans)
```

### What `consume_trace_data` does

It returns the number of dropped spans. A span is dropped in these cases:

- The span is `None`.
- The span has no name.
- The span cannot be converted.
- The client lists the span's document among `unprocessed_trace_segments`.

Errors raised by the client propagate, except when `config.local_mode` is true. In local mode they are ignored.

### Exporter methods

- `Factory.create_trace_exporter` resolves the region with `get_aws_config_session` and stores the resulting `AWSSettings` and session on the exporter.
- `Factory.create_metrics_exporter` always raises `DataTypeNotSupportedError`.

### Other helpers in `xrayexport.exporter`

- `assemble_request` converts spans into a request.
- `xray_timestamp_header` returns the `X-Amzn-Xray-Timestamp` header.
- `is_timeout_error` recognises cancelled or timed-out requests.

## Configuration

`Config.from_mapping(name, mapping)` builds a config from its settings, laid over the defaults.

- `name` is `"awsxray"` or `"awsxray/<something>"`. Any other type raises `ValueError`.
- An unknown setting raises `ValueError`.
- A value of the wrong type raises `TypeError`.

| Setting | Default |
|---|---|
| `num_workers` | 8 |
| `endpoint` | empty |
| `request_timeout_seconds` | 30 |
| `max_retries` | 2 |
| `no_verify_ssl` | false |
| `proxy_address` | empty |
| `region` | empty |
| `local_mode` | false |
| `resource_arn` | empty |
| `role_arn` | empty |

### Region

`get_aws_config_session` takes the region from the first of these that is set:

1. The `region` setting.
2. The `AWS_REGION` environment variable.
3. EC2 instance metadata, through `ConnAttr.get_ec2_region`. This source is tried only when `no_verify_ssl` is false.

If none of them gives a region, it raises `NoAwsRegionError`.

### Proxy

The proxy address comes from the `proxy_address` setting, or otherwise from `HTTPS_PROXY`. An address that does not parse raises `ValueError`.

`proxy_server_transport` returns the `TransportSettings` for a TCP proxy in front of X-Ray.

### STS helpers

- `get_partition` maps a region to its AWS partition.
- `get_sts_regional_endpoint` gives the region's STS endpoint.
- `get_sts_primary_region` gives the primary region of the partition.

## What this package does not do

The package produces segment documents and settings. The network side is left to you:

- It does not send HTTP requests to X-Ray.
- It does not sign requests.
- It does not fetch STS credentials.
- It does not query EC2 instance metadata.

Posting documents and creating sessions are done by the `XRayClient` and `ConnAttr` implementations you supply.

There is no command-line program and no long-running collector service.