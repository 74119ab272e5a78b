from fastapi import APIRouter
from pydantic import BaseModel

from coderunner.dependencies import AnyInvoker, Store
from coderunner.errors import NotFoundError
from coderunner.harness import ActiveTestSuite
from coderunner.models import ActiveTest


class AddTestRequest(BaseModel):
    code: str
    name: str | None = None


class RunTestsRequest(BaseModel):
    main_code: str


router = APIRouter(prefix="/tests")


@router.get("/{owner}", response_model=list[ActiveTest])
async def list_tests(owner: str, invoker: AnyInvoker, store: Store) -> list[ActiveTest]:
    suite = await ActiveTestSuite.load(invoker, store, owner=owner)
    return suite.tests


@router.post("/{owner}", response_model=ActiveTest, status_code=201)
async def add_test(owner: str, body: AddTestRequest, invoker: AnyInvoker, store: Store) -> ActiveTest:
    suite = await ActiveTestSuite.load(invoker, store, owner=owner)
    return await suite.add(body.code, body.name)


@router.delete("/{owner}/{test_id}")
async def delete_test(owner: str, test_id: str, invoker: AnyInvoker, store: Store) -> dict[str, str]:
    suite = await ActiveTestSuite.load(invoker, store, owner=owner)
    if suite.get(test_id) is None:
        raise NotFoundError(detail="Test not found", test_id=test_id)
    await suite.remove(test_id)
    return {"deleted": test_id}


@router.post("/{owner}/run", response_model=list[ActiveTest])
async def run_tests(owner: str, body: RunTestsRequest, invoker: AnyInvoker, store: Store) -> list[ActiveTest]:
    suite = await ActiveTestSuite.load(invoker, store, owner=owner)
    return await suite.run_all(body.main_code)
