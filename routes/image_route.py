from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from controllers.image_controller import (
	delete_image,
	list_images,
	list_local_images,
	restore_image,
	upload_image,
)

router = APIRouter(tags=["images"])


@router.post("/upload", status_code=201)
async def post_upload(request: Request, image: Optional[UploadFile] = File(None)):
	"""Upload an image to the local store and the remote host."""
	try:
		return await upload_image(request, image)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/images")
async def get_images(request: Request):
	"""List all images with their live remote status."""
	try:
		return await list_images(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.post("/restore/{image_id}")
async def post_restore(request: Request, image_id: str):
	"""Re-upload a missing image from its local copy."""
	try:
		return await restore_image(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/images/{image_id}")
async def delete_image_route(request: Request, image_id: str):
	"""Delete an image from the remote host, the local store and the record store."""
	try:
		return await delete_image(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.get("/local-images")
async def get_local_images(request: Request):
	"""List the image files kept on local disk."""
	try:
		return await list_local_images(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail="Failed to list local images") from exc
